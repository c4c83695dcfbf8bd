"""Shared test fixtures for greenroom."""

import json
import shutil
import stat
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from greenroom.config.models import (
    GreenroomConfig,
    ProgressConfig,
    StorageConfig,
    ToolPathsConfig,
)

# Stand-ins for ffprobe/ffmpeg. A "media file" is a JSON document describing
# the video (see make_media); anything else is treated as undecodable.
FAKE_FFPROBE = """
import json
import sys

path = sys.argv[-1]
try:
    with open(path, encoding="utf-8") as f:
        media = json.load(f)
except (OSError, ValueError):
    sys.stderr.write(f"{path}: Invalid data found when processing input\\n")
    sys.exit(1)

streams = []
if media.get("video", True):
    streams.append(
        {
            "width": media["width"],
            "height": media["height"],
            "duration": str(media["duration"]),
        }
    )
print(json.dumps({"streams": streams, "format": {"duration": str(media["duration"])}}))
"""

FAKE_FFMPEG = """
import json
import re
import sys
import time

args = sys.argv[1:]
source = args[args.index("-i") + 1]
try:
    with open(source, encoding="utf-8") as f:
        media = json.load(f)
except (OSError, ValueError):
    sys.stderr.write(f"{source}: Invalid data found when processing input\\n")
    sys.exit(1)

if "rawvideo" in args:
    offset = float(args[args.index("-ss") + 1])
    if not media.get("video", True) or offset >= media["duration"]:
        sys.exit(0)
    graph = args[args.index("-filter_complex") + 1]
    pixels = sum(int(w) * int(h) for w, h in re.findall(r"crop=(\\d+):(\\d+):", graph))
    sys.stdout.buffer.write(bytes(media["color"]) * pixels)
    sys.exit(0)

output = args[-1]
steps = int(media.get("steps", 4))
delay = float(media.get("encode_seconds", 0.2)) / steps
report = "-progress" in args
with open(output, "wb") as out:
    for step in range(1, steps + 1):
        time.sleep(delay)
        out.write(b"\\x1a\\x45\\xdf\\xa3" * 256)
        out.flush()
        if report:
            micros = int(media["duration"] * 1_000_000 * step / (steps + 1))
            print(f"frame={step * 25}", flush=True)
            print(f"out_time_us={micros}", flush=True)
            print("speed=1.0x", flush=True)
            print("progress=continue", flush=True)

if media.get("fail_encode"):
    sys.stderr.write("Conversion failed!\\n")
    sys.exit(1)
if report:
    print("progress=end", flush=True)
"""


def _write_script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test isolation."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def fake_tools(temp_dir: Path) -> ToolPathsConfig:
    """Executable ffmpeg/ffprobe stand-ins that understand make_media files."""
    bin_dir = temp_dir / "bin"
    bin_dir.mkdir()
    return ToolPathsConfig(
        ffmpeg=_write_script(bin_dir / "ffmpeg", FAKE_FFMPEG),
        ffprobe=_write_script(bin_dir / "ffprobe", FAKE_FFPROBE),
    )


@pytest.fixture
def make_media() -> Callable[..., bytes]:
    """Factory for media documents understood by the fake tools.

    Returns the document bytes; pass path= to also write them to disk.
    """

    def _make(
        path: Path | None = None,
        *,
        width: int = 640,
        height: int = 360,
        duration: float = 10.0,
        color: tuple[int, int, int] = (0, 177, 64),
        encode_seconds: float = 0.2,
        steps: int = 4,
        video: bool = True,
        fail_encode: bool = False,
    ) -> bytes:
        data = json.dumps(
            {
                "width": width,
                "height": height,
                "duration": duration,
                "color": list(color),
                "encode_seconds": encode_seconds,
                "steps": steps,
                "video": video,
                "fail_encode": fail_encode,
            }
        ).encode()
        if path is not None:
            path.write_bytes(data)
        return data

    return _make


@pytest.fixture
def storage(temp_dir: Path) -> StorageConfig:
    """Storage layout under a fresh data directory, directories created."""
    storage = StorageConfig(data_dir=temp_dir / "data")
    storage.ensure_dirs()
    return storage


@pytest.fixture
def config(storage: StorageConfig, fake_tools: ToolPathsConfig) -> GreenroomConfig:
    """Configuration wired to the fake tools with a fast size monitor."""
    return GreenroomConfig(
        storage=storage,
        tools=fake_tools,
        progress=ProgressConfig(poll_interval=0.05, ceiling_seconds=10.0),
    )


@pytest.fixture
def ffprobe_fixtures_dir() -> Path:
    """Return the path to the ffprobe fixtures directory."""
    return Path(__file__).parent / "fixtures" / "ffprobe"


def load_ffprobe_fixture(name: str) -> dict:
    """Load an ffprobe JSON fixture by name."""
    fixture_path = Path(__file__).parent / "fixtures" / "ffprobe" / f"{name}.json"
    return json.loads(fixture_path.read_text())


@pytest.fixture
def green_screen_fixture() -> dict:
    """ffprobe output for a 1080p green-screen clip."""
    return load_ffprobe_fixture("green_screen_1080p")


@pytest.fixture
def audio_only_fixture() -> dict:
    """ffprobe output for a file without a video stream."""
    return load_ffprobe_fixture("audio_only")
