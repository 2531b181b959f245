from __future__ import annotations

import os
import urllib.parse
from dataclasses import dataclass

from ..errors import ThrottleIOError


def _file_name(key: str) -> str:
    # percent-encoding 可逆：不同的域名（含 IDN）一定落到不同的文件
    name = urllib.parse.quote(key, safe="")
    if name in (".", ".."):
        name = name.replace(".", "%2E")
    return f"{name}.throttle"


@dataclass(slots=True)
class FileThrottleStore:
    """
    默认节流存储：目录下每个目标一个文件，内容形如 "1700000000|2"（无换行）。

    注意：读-改-写不是原子操作，多个进程同时针对同一域名运行时可能互相覆盖。
    """

    directory: str

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, _file_name(key))

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ThrottleIOError(f"cannot read throttle record {path}: {e}") from e

    def write(self, key: str, text: str) -> None:
        path = self.path_for(key)
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise ThrottleIOError(f"cannot write throttle record {path}: {e}") from e

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise ThrottleIOError(f"cannot delete throttle record {path}: {e}") from e
