"""FFmpeg/ffprobe adapter for every audio transformation.

Responsibilities:
- Probe track duration.
- Concatenate tracks losslessly (plain copy for a single input).
- Loop a bed to a duration, pad/trim a track to an exact duration.
- Mix N inputs with per-input gain and delay, base input governing length.

Every command runs with a bounded timeout, writes to a temporary sibling file,
and is moved into place only after a zero exit code, so a failed run never
leaves a partial file at the requested output path.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import shutil
import subprocess
import tempfile
from typing import Sequence

from ..runtime_tools import install_hint, resolve_executable


_CODEC_ARGS = {
    ".mp3": ["-c:a", "libmp3lame", "-q:a", "2"],
    ".ogg": ["-c:a", "libopus", "-b:a", "64k"],
    ".opus": ["-c:a", "libopus", "-b:a", "64k"],
    ".wav": ["-c:a", "pcm_s16le"],
}


class MediaToolError(RuntimeError):
    """Raised when ffmpeg/ffprobe fails, times out, or is missing."""

    def __init__(self, message: str, *, tool: str, stderr: str = "") -> None:
        super().__init__(f"{message}\n{stderr}".strip() if stderr else message)
        self.tool = tool
        self.stderr = stderr


@dataclass(frozen=True, slots=True)
class MixInput:
    """One mix input: track path, linear gain, and start offset in seconds."""

    path: Path
    volume: float = 1.0
    delay_seconds: float = 0.0


class MediaTool:
    """Thin adapter over the `ffmpeg` and `ffprobe` executables."""

    def __init__(self, timeout_seconds: float = 120.0) -> None:
        self.timeout_seconds = timeout_seconds

    def probe_duration(self, path: Path) -> float:
        """Return the duration of `path` in seconds."""

        command = [
            resolve_executable("ffprobe"),
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        output = self._run("ffprobe", command)
        try:
            duration = float(output.strip().splitlines()[0])
        except (IndexError, ValueError) as exc:
            raise MediaToolError(
                f"ffprobe returned no duration for {path}.", tool="ffprobe", stderr=output
            ) from exc
        return duration

    def concat(self, inputs: Sequence[Path], output: Path) -> Path:
        """Concatenate `inputs` in order with stream copy."""

        if not inputs:
            raise ValueError("Concatenation needs at least one input.")
        if len(inputs) == 1:
            return self._copy(inputs[0], output)

        output.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="audiotale-concat-") as scratch:
            list_path = Path(scratch) / "inputs.txt"
            list_path.write_text(
                "".join(f"file '{self._escape_concat_path(path)}'\n" for path in inputs),
                encoding="utf-8",
            )
            return self._ffmpeg_to(
                output,
                ["-f", "concat", "-safe", "0", "-i", str(list_path), "-c", "copy"],
                encode=False,
            )

    def loop_to_duration(
        self, source: Path, duration_seconds: float, output: Path, volume: float = 1.0
    ) -> Path:
        """Loop `source` endlessly and cut at `duration_seconds`, applying `volume`."""

        return self._ffmpeg_to(
            output,
            [
                "-stream_loop",
                "-1",
                "-i",
                str(source),
                "-t",
                f"{duration_seconds:.3f}",
                "-af",
                f"volume={volume:.2f}",
            ],
        )

    def fit_to_duration(self, source: Path, duration_seconds: float, output: Path) -> Path:
        """Pad with silence and trim so the output lasts exactly `duration_seconds`."""

        return self._ffmpeg_to(
            output,
            ["-i", str(source), "-af", f"apad,atrim=duration={duration_seconds:.3f}"],
        )

    def mix(self, inputs: Sequence[MixInput], output: Path) -> Path:
        """Mix `inputs`; the first input's duration sets the output duration."""

        if not inputs:
            raise ValueError("Mixing needs at least one input.")
        if len(inputs) == 1 and inputs[0].delay_seconds == 0 and inputs[0].volume == 1.0:
            return self._copy(inputs[0].path, output)

        arguments: list[str] = []
        filters: list[str] = []
        labels: list[str] = []
        for position, item in enumerate(inputs):
            arguments.extend(["-i", str(item.path)])
            delay_ms = max(0, int(round(item.delay_seconds * 1000)))
            chain = f"[{position}:a]"
            if delay_ms:
                chain += f"adelay={delay_ms}|{delay_ms},"
            chain += f"volume={item.volume:.2f}[m{position}]"
            filters.append(chain)
            labels.append(f"[m{position}]")
        filters.append(
            f"{''.join(labels)}amix=inputs={len(inputs)}:duration=first:"
            "dropout_transition=0[out]"
        )
        arguments.extend(["-filter_complex", ";".join(filters), "-map", "[out]"])
        return self._ffmpeg_to(output, arguments)

    def _ffmpeg_to(self, output: Path, arguments: list[str], *, encode: bool = True) -> Path:
        output.parent.mkdir(parents=True, exist_ok=True)
        staging = output.with_name(f".{output.stem}.partial{output.suffix}")
        command = [resolve_executable("ffmpeg"), "-y", "-hide_banner", "-loglevel", "error"]
        command.extend(arguments)
        if encode:
            command.extend(_CODEC_ARGS.get(output.suffix.lower(), []))
        command.append(str(staging))
        try:
            self._run("ffmpeg", command)
            os.replace(staging, output)
        finally:
            staging.unlink(missing_ok=True)
        return output

    def _run(self, tool: str, command: list[str]) -> str:
        try:
            result = subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise MediaToolError(
                f"The `{tool}` command was not found. {install_hint(tool)}", tool=tool
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise MediaToolError(
                f"{tool} timed out after {self.timeout_seconds:.0f}s.", tool=tool
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise MediaToolError(
                f"{tool} exited with code {exc.returncode}.",
                tool=tool,
                stderr=(exc.stderr or "").strip(),
            ) from exc
        return result.stdout

    @staticmethod
    def _copy(source: Path, output: Path) -> Path:
        output.parent.mkdir(parents=True, exist_ok=True)
        staging = output.with_name(f".{output.stem}.partial{output.suffix}")
        try:
            shutil.copyfile(source, staging)
            os.replace(staging, output)
        finally:
            staging.unlink(missing_ok=True)
        return output

    @staticmethod
    def _escape_concat_path(path: Path) -> str:
        return str(path.resolve()).replace("'", "'\\''")
