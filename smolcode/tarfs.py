"""A writeable file system that streams its files into a tar archive."""

from __future__ import annotations

import io
import posixpath
import tarfile
import time
from typing import BinaryIO


class TarballWriterFS:
    """Writes directories and files as entries of a tar archive on a binary stream."""

    def __init__(self, target: BinaryIO) -> None:
        self._tar = tarfile.open(fileobj=target, mode="w|")
        self._created_dirs: set[str] = set()

    def mkdir_all(self, path: str, perm: int) -> None:
        """Add directory entries for path and each of its parents not yet written."""
        clean = posixpath.normpath(path) if path else "."
        if clean in (".", ""):
            return
        current = ""
        for part in clean.strip("/").split("/"):
            if not part:
                continue
            current = posixpath.join(current, part)
            entry = current.rstrip("/") + "/"
            if entry in self._created_dirs:
                continue
            info = tarfile.TarInfo(name=entry)
            info.type = tarfile.DIRTYPE
            info.mode = perm & 0o7777
            info.mtime = int(time.time())
            try:
                self._tar.addfile(info)
            except (OSError, tarfile.TarError) as exc:
                raise OSError(
                    f"tarball: failed to write header for directory {entry}: {exc}"
                ) from exc
            self._created_dirs.add(entry)

    def write_file(self, filename: str, data: bytes, perm: int) -> None:
        """Add a regular file entry holding data."""
        clean = posixpath.normpath(filename)
        info = tarfile.TarInfo(name=clean)
        info.type = tarfile.REGTYPE
        info.size = len(data)
        info.mode = perm & 0o7777
        info.mtime = int(time.time())
        try:
            self._tar.addfile(info, io.BytesIO(data))
        except (OSError, tarfile.TarError) as exc:
            raise OSError(f"tarball: failed to write file {clean}: {exc}") from exc

    def close(self) -> None:
        """Finish the archive; the target stream itself stays open."""
        self._tar.close()

    def __enter__(self) -> "TarballWriterFS":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()