"""reward_persist.decode

File framing for reward files.

A file is a sequence of frames, each a 4-byte big-endian payload length
followed by the payload. Keys ending in ``.gz`` are gzip-compressed as a
whole. Decoding is lazy: frames are read as the caller iterates, and the
first malformed frame raises DecodeError, ending the sequence.
"""

from __future__ import annotations

import gzip
import logging
import struct
import zlib
from collections.abc import Callable, Iterator
from typing import BinaryIO, TypeVar

from google.protobuf.message import DecodeError as ProtobufDecodeError

from reward_persist.shared import DecodeError

log = logging.getLogger(__name__)

T = TypeVar("T")

_LENGTH = struct.Struct(">I")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to size bytes, looping over short reads."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def iter_frames(stream: BinaryIO) -> Iterator[bytes]:
    """Yield each length-prefixed payload in stream."""
    index = 0
    while True:
        header = _read_exact(stream, _LENGTH.size)
        if not header:
            return
        if len(header) < _LENGTH.size:
            raise DecodeError(f"frame {index}: truncated length header ({len(header)} bytes)")
        (size,) = _LENGTH.unpack(header)
        payload = _read_exact(stream, size)
        if len(payload) < size:
            raise DecodeError(
                f"frame {index}: truncated payload ({len(payload)} of {size} bytes)"
            )
        yield payload
        index += 1


def _frames(stream: BinaryIO, compressed: bool) -> Iterator[bytes]:
    if not compressed:
        yield from iter_frames(stream)
        return
    try:
        with gzip.GzipFile(fileobj=stream, mode="rb") as unzipped:
            yield from iter_frames(unzipped)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"corrupt gzip stream: {exc}") from exc


def decode_file(
    stream: BinaryIO,
    parse: Callable[[bytes], T],
    *,
    source: str,
    compressed: bool,
) -> Iterator[T]:
    """Lazily decode every frame in stream with parse.

    Raises:
        DecodeError: On the first truncated frame, corrupt gzip data, or
            payload that parse rejects. The message names source and the
            frame index.
    """
    frames = _frames(stream, compressed)
    index = 0
    while True:
        try:
            payload = next(frames)
        except StopIteration:
            break
        except DecodeError as exc:
            raise DecodeError(f"{source}: {exc}") from exc
        try:
            record = parse(payload)
        except DecodeError as exc:
            raise DecodeError(f"{source}: frame {index}: {exc}") from exc
        except (ProtobufDecodeError, ValueError, ArithmeticError) as exc:
            raise DecodeError(f"{source}: frame {index}: {type(exc).__name__}: {exc}") from exc
        yield record
        index += 1
    log.debug("decoded %d frames from %s", index, source)
