import asyncio
import re
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from watchdog.events import PatternMatchingEventHandler
from watchdog.observers import Observer

from ltcf_ingestor.commons.logger import logger

_STAMP = re.compile(r"(\d{8})-(\d{6})")


def filename_timestamp(path: Path) -> Optional[datetime]:
    """'20250821-170605_ltcf.dat' -> 2025-08-21 17:06:05."""
    m = _STAMP.search(path.name)
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1) + m.group(2), "%Y%m%d%H%M%S")
    except ValueError:
        return None


def _sort_key(path: Path):
    stamp = filename_timestamp(path)
    if stamp is None:
        stamp = datetime.fromtimestamp(path.stat().st_mtime)
    return stamp, path.name


def queued_files(folder: str, pattern: str = "*.dat") -> List[Path]:
    """Archivos en cola, el más antiguo primero."""
    base = Path(folder)
    if not base.exists():
        return []
    files = [p for p in base.glob(pattern) if p.is_file()]
    return sorted(files, key=_sort_key)


class FileWatcher:
    def __init__(self, inbox: str, glob: str, on_file_async, loop: asyncio.AbstractEventLoop):
        self.inbox = Path(inbox)
        self.inbox.mkdir(parents=True, exist_ok=True)
        self.loop = loop
        self.on_file_async = on_file_async
        self.handler = PatternMatchingEventHandler(patterns=[glob], ignore_directories=True)

        def _submit(path: Path):
            # Si ya no existe, otro proceso lo movió
            if not path.exists():
                return
            # Espera breve hasta que termine de escribirse
            last = -1
            for _ in range(10):
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    return
                if size == last:
                    break
                last = size
                time.sleep(0.05)
            logger.debug(f"Archivo detectado: {path}")
            asyncio.run_coroutine_threadsafe(self.on_file_async(path), self.loop)

        self.handler.on_created = lambda e: _submit(Path(e.src_path))
        self.handler.on_moved = lambda e: _submit(Path(e.dest_path))

        self.observer = Observer()

    def start(self):
        self.observer.schedule(self.handler, str(self.inbox), recursive=False)
        self.observer.start()

    def stop(self):
        self.observer.stop()
        self.observer.join()
