import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from ..models import Bucket, Snapshot

logger = logging.getLogger(__name__)

INDEX_FILE = "index.htm"
TEMPLATE_FILE = INDEX_FILE + ".tpl"
PACKAGED_TEMPLATES = Path(__file__).resolve().parent.parent / "templates"


class IndexRenderer:
    """Publishes snapshots as a static HTML page in `base_dir`.

    A `index.htm.tpl` next to the data files overrides the packaged one.
    """

    def __init__(
        self,
        base_dir: Path,
        slow_threshold: int,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.base_dir = Path(base_dir)
        self.slow_threshold = slow_threshold
        self._now = now
        self.latest: Optional[Snapshot] = None
        self.env = Environment(
            loader=FileSystemLoader([str(self.base_dir), str(PACKAGED_TEMPLATES)]),
            autoescape=select_autoescape(["htm", "html", "tpl"]),
        )
        self.env.tests["slow"] = lambda rt: rt >= self.slow_threshold

    @property
    def index_path(self) -> Path:
        return self.base_dir / INDEX_FILE

    def context(self, snap: Snapshot) -> dict:
        return {
            "names": snap.names,
            "rows": [
                {
                    "time": datetime.fromtimestamp(b.key).strftime("%Y-%m-%d %H:%M"),
                    "rt_list": b.row(snap.names),
                }
                for b in snap.buckets
            ],
            "generated_time": snap.generated_at.strftime("%Y-%m-%d %H:%M:%S"),
        }

    def publish(self, names: Sequence[str], buckets: Sequence[Bucket]) -> None:
        snap = Snapshot(tuple(names), tuple(buckets), self._now())
        self.latest = snap
        try:
            html = self.env.get_template(TEMPLATE_FILE).render(**self.context(snap))
            self._write(html)
        except (TemplateError, OSError) as e:
            logger.error("render %s error: %s", self.index_path, e)
            return
        logger.info("render index complete")

    def _write(self, html: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.base_dir, prefix=".index.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(html)
            os.chmod(tmp, 0o644)
            os.replace(tmp, self.index_path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
