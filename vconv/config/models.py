from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

ENCODER_MODES = ("software", "hardware")


def _check_plain_name(value: str, field: str) -> str:
    if not value or "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"{field} must be a plain directory or file name, got {value!r}")
    return value


class GeneralConfig(BaseModel):
    jobs: int = Field(default=4, gt=0)
    extensions: List[str] = Field(
        default_factory=lambda: [".avi", ".mkv", ".mp4", ".mov", ".flv", ".wmv", ".webm"]
    )
    recursive: bool = False
    resume_archived: bool = True
    archive_dir_name: str = "original"
    converted_dir_name: str = "converted"
    temp_infix: str = "temp"
    log_file: str = "conversion.log"
    error_log_file: str = "conversion_errors.log"
    nice: Optional[int] = Field(default=10, ge=-20, le=19)
    interrupt_timeout_s: float = Field(default=10.0, gt=0)
    debug: bool = False

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("extensions must not be empty")
        return [(ext if ext.startswith(".") else f".{ext}").lower() for ext in v]

    @field_validator("archive_dir_name", "converted_dir_name", "log_file", "error_log_file")
    @classmethod
    def validate_plain_names(cls, v: str, info) -> str:
        return _check_plain_name(v, info.field_name)

    @field_validator("temp_infix")
    @classmethod
    def validate_temp_infix(cls, v: str) -> str:
        if not v or "." in v or "/" in v:
            raise ValueError("temp_infix must be a non-empty name without dots or slashes")
        return v

    @model_validator(mode="after")
    def validate_distinct_dirs(self):
        if self.archive_dir_name == self.converted_dir_name:
            raise ValueError("archive_dir_name and converted_dir_name must differ")
        return self


class EncoderProfile(BaseModel):
    """ffmpeg output parameters for one encoder mode."""
    video_codec: str
    video_bitrate: Optional[str] = None
    crf: Optional[int] = Field(default=None, ge=0, le=63)
    preset: Optional[str] = None
    pix_fmt: Optional[str] = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: Optional[str] = "256k"
    extra_args: List[str] = Field(default_factory=list)


def _default_software_profile() -> EncoderProfile:
    return EncoderProfile(video_codec="libx264", crf=23, preset="medium")


def _default_hardware_profile() -> EncoderProfile:
    return EncoderProfile(video_codec="h264_videotoolbox", video_bitrate="6000k")


class EncoderConfig(BaseModel):
    mode: str = "software"
    software: EncoderProfile = Field(default_factory=_default_software_profile)
    hardware: EncoderProfile = Field(default_factory=_default_hardware_profile)

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in ENCODER_MODES:
            raise ValueError(f"Unsupported encoder mode: {v}. Use one of {list(ENCODER_MODES)}")
        return mode

    @property
    def active_profile(self) -> EncoderProfile:
        return self.hardware if self.mode == "hardware" else self.software


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
