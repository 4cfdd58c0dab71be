"""
Best-effort compression of finished recordings.

compress() always hands back a usable artifact path: the compressed file on
success, the untouched original when the format is "none" or anything goes
wrong while writing the compressed copy.
"""

from __future__ import annotations

import asyncio
import gzip
import os
import shutil
import zipfile
from pathlib import Path
from typing import Callable, Dict, Union

from loguru import logger

from .config import CompressionFormat

CHUNK_SIZE = 1024 * 1024

SUFFIXES: Dict[str, str] = {"gzip": ".gz", "zip": ".zip"}


def compression_suffix(fmt: str) -> str:
    return SUFFIXES.get(fmt, "")


def gzip_file(src: Path, dst: Path) -> None:
    with open(src, "rb") as fin, gzip.open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout, CHUNK_SIZE)


def zip_file(src: Path, dst: Path) -> None:
    with zipfile.ZipFile(dst, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.write(src, arcname=src.name)


TRANSFORMS: Dict[str, Callable[[Path, Path], None]] = {
    "gzip": gzip_file,
    "zip": zip_file,
}


def compress_sync(input_path: Union[str, os.PathLike], fmt: CompressionFormat = "none") -> Path:
    src = Path(input_path)
    if fmt == "none":
        return src

    transform = TRANSFORMS.get(fmt)
    if transform is None:
        logger.warning(f"Unknown compression format {fmt!r}, keeping {src.name} uncompressed")
        return src

    dst = Path(str(src) + compression_suffix(fmt))
    try:
        transform(src, dst)
    except Exception as e:
        logger.error(f"Compression of {src} to {fmt} failed: {type(e).__name__}: {e}")
        _discard(dst)
        return src

    # only drop the original once the compressed copy is complete
    try:
        src.unlink()
    except OSError as e:
        logger.warning(f"Compressed {src.name} but could not remove original: {e}")
    logger.debug(f"Compressed {src.name} -> {dst.name}")
    return dst


async def compress(input_path: Union[str, os.PathLike], fmt: CompressionFormat = "none") -> Path:
    """Compress input_path with fmt off the event loop; see compress_sync."""
    if fmt == "none":
        return Path(input_path)
    return await asyncio.to_thread(compress_sync, input_path, fmt)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial output {path}: {e}")
