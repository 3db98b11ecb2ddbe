import threading
from pathlib import Path
from vconv.config.models import GeneralConfig
from vconv.pipeline.resolver import OutputNameRegistry, PathResolver, temp_path_for


def test_claim_unique_counts_up(tmp_path):
    registry = OutputNameRegistry()
    assert registry.claim_unique(tmp_path, "a") == tmp_path / "a.mp4"
    assert registry.claim_unique(tmp_path, "a") == tmp_path / "a (1).mp4"
    assert registry.claim_unique(tmp_path, "a") == tmp_path / "a (2).mp4"
    assert tmp_path / "a (1).mp4" in registry


def test_claim_unique_skips_existing_files(tmp_path):
    (tmp_path / "a.mp4").write_text("x")
    (tmp_path / "a (1).mp4").write_text("x")
    assert OutputNameRegistry().claim_unique(tmp_path, "a") == tmp_path / "a (2).mp4"


def test_release(tmp_path):
    registry = OutputNameRegistry()
    path = registry.claim_unique(tmp_path, "a")
    registry.release(path)
    assert path not in registry
    assert registry.claim_unique(tmp_path, "a") == path


def test_concurrent_claims_are_distinct(tmp_path):
    registry = OutputNameRegistry()
    claimed = []
    lock = threading.Lock()

    def worker():
        for _ in range(25):
            path = registry.claim_unique(tmp_path, "clip")
            with lock:
                claimed.append(path)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(claimed) == 100
    assert len(set(claimed)) == 100


def test_temp_path_for():
    assert temp_path_for(Path("converted/a (1).mp4")) == Path("converted/a (1).temp.mp4")
    assert temp_path_for(Path("converted/a.mp4"), "part") == Path("converted/a.part.mp4")


def test_resolve_keeps_basename_and_drops_last_extension(tmp_path):
    resolver = PathResolver(GeneralConfig(), OutputNameRegistry())
    paths = resolver.resolve(tmp_path / "holiday.2019.mkv")

    assert paths.archive_dir == tmp_path / "original"
    assert paths.converted_dir == tmp_path / "converted"
    assert paths.archive_path == tmp_path / "original" / "holiday.2019.mkv"
    assert paths.output_path == tmp_path / "converted" / "holiday.2019.mp4"
    assert paths.temp_path == tmp_path / "converted" / "holiday.2019.temp.mp4"


def test_build_job_same_stem_gets_distinct_outputs(tmp_path):
    resolver = PathResolver(GeneralConfig(), OutputNameRegistry())
    first = resolver.build_job(tmp_path / "a.mkv", index=1)
    second = resolver.build_job(tmp_path / "a.mp4", index=2)
    third = resolver.build_job(tmp_path / "a.avi", index=3, resumed=True)

    assert first.output_path.name == "a.mp4"
    assert second.output_path.name == "a (1).mp4"
    assert third.output_path.name == "a (2).mp4"
    assert third.resumed is True
    assert first.state.value == "DISCOVERED"


def test_resolve_uses_configured_dir_names(tmp_path):
    config = GeneralConfig(archive_dir_name="src", converted_dir_name="out")
    paths = PathResolver(config, OutputNameRegistry()).resolve(tmp_path / "x.avi")
    assert paths.archive_path == tmp_path / "src" / "x.avi"
    assert paths.output_path == tmp_path / "out" / "x.mp4"


def test_claim_unique_never_hands_out_a_temp_name(tmp_path):
    registry = OutputNameRegistry()
    assert registry.claim_unique(tmp_path, "clip.temp") == tmp_path / "clip.temp (1).mp4"
    assert OutputNameRegistry("part").claim_unique(tmp_path, "clip.part") == tmp_path / "clip.part (1).mp4"


def test_claim_unique_reserves_temp_paths(tmp_path):
    registry = OutputNameRegistry()
    first = registry.claim_unique(tmp_path, "clip")
    assert tmp_path / "clip.temp.mp4" in registry
    second = registry.claim_unique(tmp_path, "clip.temp")
    assert second != tmp_path / "clip.temp.mp4"

    registry.release(first)
    assert tmp_path / "clip.temp.mp4" not in registry


def test_stale_temp_on_disk_does_not_shift_name(tmp_path):
    (tmp_path / "a.temp.mp4").write_text("partial")
    assert OutputNameRegistry().claim_unique(tmp_path, "a") == tmp_path / "a.mp4"


def test_outputs_and_temps_do_not_overlap(tmp_path):
    resolver = PathResolver(GeneralConfig(), OutputNameRegistry())
    jobs = [
        resolver.build_job(tmp_path / name, index=i)
        for i, name in enumerate(["clip.mkv", "clip.temp.avi", "clip.temp.temp.mov"], start=1)
    ]
    outputs = {job.output_path for job in jobs}
    temps = {job.temp_path for job in jobs}

    assert len(outputs) == 3
    assert outputs.isdisjoint(temps)
    assert not any(p.name.endswith(".temp.mp4") for p in outputs)
