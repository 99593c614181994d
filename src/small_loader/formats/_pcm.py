"""Decode MPEG audio frames to interleaved signed 16-bit PCM using PyAV."""

import logging

import av
import av.error
import numpy as np

from small_loader.exceptions import MalformedRecordError

logger = logging.getLogger(__name__)

_INT16_MAX = np.iinfo(np.int16).max


class PcmDecoder:
    def __init__(self) -> None:
        self._context = av.CodecContext.create("mp3", "r")

    def decode(self, frame: bytes) -> bytes:
        """Decode one encoded frame.

        The result may be empty while the decoder is still priming.
        """
        try:
            decoded = self._context.decode(av.Packet(frame))
        except av.error.FFmpegError as exc:
            raise MalformedRecordError(f"failed to decode MPEG audio frame: {exc}") from exc

        blocks = []
        for audio in decoded:
            samples = audio.to_ndarray()
            if audio.format.is_planar:
                # (channels, samples) -> (samples, channels)
                samples = samples.T
            if samples.dtype.kind == "f":
                samples = np.clip(samples, -1.0, 1.0) * _INT16_MAX
            blocks.append(samples.astype("<i2").tobytes())
        return b"".join(blocks)

    def close(self) -> None:
        logger.debug("Closing PCM decoder")
        self._context = None
