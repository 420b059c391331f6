"""Loading of program images into machine memory."""

from __future__ import annotations

import os
import struct
from typing import Union

from .machine import MEMORY_SIZE, BadImageSize, State

_ORIGIN = struct.Struct(">H")


def load_image(data: bytes, state: State) -> int:
    """Copy a big-endian image into memory at its origin and return the origin.

    The first word of ``data`` is the load address; every following pair of
    bytes is one word. A trailing odd byte becomes the high byte of a final
    word. Raises ``BadImageSize`` when the image does not fit in memory.
    """
    if len(data) < _ORIGIN.size:
        raise BadImageSize()
    (origin,) = _ORIGIN.unpack_from(data)
    payload = bytes(data[_ORIGIN.size:])
    if len(payload) % 2:
        payload += b"\x00"
    word_count = len(payload) // 2
    if word_count > MEMORY_SIZE - origin:
        raise BadImageSize()
    words = struct.unpack(f">{word_count}H", payload)
    for offset, word in enumerate(words):
        state.memory_write(origin + offset, word)
    return origin


def read_file_to_memory(path: Union[str, os.PathLike], state: State) -> int:
    """Read the image file at ``path`` into memory and return its origin."""
    with open(path, "rb") as image:
        data = image.read()
    return load_image(data, state)