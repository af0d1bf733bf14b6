"""Line framing of the raw SBMS byte stream."""

from __future__ import annotations

import logging
from typing import BinaryIO, Iterator

from .protocol import SBMSError

logger = logging.getLogger(__name__)


class StreamError(SBMSError):
    """The byte stream failed and no more records can be read."""


class StreamClosed(StreamError):
    """The byte stream reached end-of-input."""

    def __init__(self) -> None:
        super().__init__("end of stream")


def read_records(stream: BinaryIO) -> Iterator[bytes]:
    """Yield each line of ``stream`` with surrounding whitespace stripped.

    Records are forwarded whatever their length; rejecting malformed
    ones is left to the decoder. The generator ends at end-of-input.

    Raises:
        StreamError: reading from ``stream`` failed.
    """
    try:
        for line in stream:
            yield line.strip()
    except (OSError, ValueError) as e:
        # ValueError: the stream was closed underneath us
        raise StreamError(f"read failed: {e}") from e
    logger.debug("End of stream")
