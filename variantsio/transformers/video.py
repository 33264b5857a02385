import logging
import os
import shlex
import subprocess
import tempfile

import ffmpeg

from variantsio import utils
from variantsio.schemas import TransformationError
from variantsio.variation import Variation

from .base import TransformResult, Transformer

logger = logging.getLogger(__name__)


class FfmpegTransformer(Transformer):
    """
    Runs ffmpeg over a video.  `ffmpeg_opts` is a raw argument string placed
    among the output options, e.g.
    ``-filter_complex "[0:v]setpts=2*PTS[v];[0:a]atempo=0.5[a]" -map "[v]" -map "[a]"``
    """

    name = "ffmpeg"
    options = {"ffmpeg_opts", "format"}

    def __init__(self, cmd: str = "ffmpeg", default_format: str = "mp4"):
        self.cmd = cmd
        self.default_format = default_format

    def supports(self, content_type: str) -> bool:
        return content_type.startswith("video/")

    def output_content_type(self, content_type: str, variation: Variation) -> str:
        return utils.guess_content_type(f"output.{variation.format or self.default_format}")

    def build_args(self, src: str, dst: str, fmt: str, opts: str) -> list:
        args = (
            ffmpeg.input(src)
            .output(dst, format=fmt)
            .overwrite_output()
            .compile(cmd=self.cmd)
        )
        position = args.index(dst)
        args[position:position] = shlex.split(opts)
        return args

    def transform(
        self, data: bytes, content_type: str, variation: Variation
    ) -> TransformResult:
        unknown = set(variation.options) - self.options
        if unknown:
            raise TransformationError(
                f"Unsupported ffmpeg options: {', '.join(sorted(unknown))}"
            )
        fmt = variation.format or self.default_format
        opts = variation.options.get("ffmpeg_opts") or ""
        if not isinstance(opts, str):
            raise TransformationError(f"ffmpeg_opts must be a string, got {opts!r}")

        with tempfile.TemporaryDirectory(prefix="variantsio-") as workdir:
            src = os.path.join(workdir, f"input.{utils.extension_for(content_type)}")
            dst = os.path.join(workdir, f"output.{fmt}")
            with open(src, "wb") as f:
                f.write(data)
            try:
                args = self.build_args(src, dst, fmt, opts)
            except ValueError as e:
                raise TransformationError("Malformed ffmpeg_opts", detail=str(e)) from e

            logger.debug("Running %s", " ".join(args))
            try:
                process = subprocess.run(args, capture_output=True)
            except OSError as e:
                raise TransformationError(f"Could not run {self.cmd}", detail=str(e)) from e
            if process.returncode != 0:
                stderr = process.stderr.decode("utf-8", errors="replace")
                raise TransformationError(
                    f"{self.cmd} exited with status {process.returncode}",
                    detail=stderr[-4000:],
                )
            with open(dst, "rb") as f:
                output = f.read()

        return TransformResult(output, utils.guess_content_type(f"output.{fmt}"))
