"""
Image pull progress aggregation.

Folds the Docker Engine API's structured pull stream
(`api.pull(stream=True, decode=True)`) into PullProgress snapshots with
layer counts, byte totals and a one-line summary.

Usage:
    tracker = PullProgressTracker("nginx:latest")
    async for line in runtime.pull_image("nginx", "latest"):
        progress = tracker.update(line)
        if progress:
            ...
    final = tracker.finish()
"""

import logging
from typing import Any, Dict, Optional

from updates.types import PullProgress

logger = logging.getLogger(__name__)

# Layer states that mean "nothing left to do for this layer"
DONE_STATUSES = ('Already exists', 'Pull complete')


class ImagePullError(Exception):
    """The pull stream reported an error."""


class PullProgressTracker:
    """Layer-by-layer pull progress for one image."""

    def __init__(self, image: str):
        self.image = image
        self.layer_status: Dict[str, Dict[str, Any]] = {}  # {layer_id: {"status", "current", "total"}}
        self.digest: Optional[str] = None

    def update(self, line: Dict[str, Any]) -> Optional[PullProgress]:
        """
        Apply one stream event.

        Returns:
            A fresh PullProgress for layer events, None for the rest
            ("Pulling from library/nginx", "Digest: ...", "Status: ...").

        Raises:
            ImagePullError: the event carries an error
        """
        if line.get('error'):
            raise ImagePullError(line.get('error'))

        status = line.get('status', '')
        layer_id = line.get('id')

        if status.startswith('Digest:'):
            self.digest = status.split(':', 1)[1].strip()
            return None

        # Non-layer messages (the id is the tag for "Pulling from ...")
        if not layer_id or status.startswith('Pulling from'):
            return None

        logger.debug(f"Layer {layer_id[:12]}: {status}")

        if status in DONE_STATUSES:
            # Cached layers never report sizes: count them as fully downloaded
            existing = self.layer_status.get(layer_id, {})
            total = existing.get('total', 0)
            self.layer_status[layer_id] = {
                'status': status,
                'current': total,
                'total': total,
            }
            return self.snapshot()

        progress_detail = line.get('progressDetail') or {}
        current = progress_detail.get('current', 0) or 0
        total = progress_detail.get('total', 0) or 0

        # Preserve total if not provided in this update
        if total == 0 and layer_id in self.layer_status:
            total = self.layer_status[layer_id].get('total', 0)

        # Extract progress reuses current/total for bytes extracted, not downloaded
        if status == 'Extracting' and layer_id in self.layer_status:
            current = self.layer_status[layer_id].get('total', total)

        self.layer_status[layer_id] = {
            'status': status,
            'current': current,
            'total': total,
        }
        return self.snapshot()

    def snapshot(self, overall_percent: Optional[int] = None) -> PullProgress:
        """Current aggregate progress."""
        layers = self.layer_status.values()
        total_layers = len(self.layer_status)
        total_bytes = sum(l['total'] for l in layers if l['total'] > 0)
        downloaded_bytes = sum(min(l['current'], l['total']) if l['total'] else l['current'] for l in layers)
        complete = sum(1 for l in layers if l['status'] in DONE_STATUSES)
        downloading = sum(1 for l in layers if l['status'] == 'Downloading')
        extracting = sum(1 for l in layers if l['status'] == 'Extracting')
        cached = sum(1 for l in layers if l['status'] == 'Already exists')

        if overall_percent is None:
            if total_bytes > 0:
                overall_percent = int((downloaded_bytes / total_bytes) * 100)
            else:
                # Fallback: estimate based on layer completion count
                overall_percent = int((complete / max(total_layers, 1)) * 100)
            overall_percent = min(overall_percent, 100)

        if total_layers == 0:
            # Image with no layers to fetch (manifest only or fully cached tag)
            summary = "Pull complete (manifest only)"
        elif downloading > 0:
            summary = f"Downloading {downloading} of {total_layers} layers ({overall_percent}%)"
        elif extracting > 0:
            summary = f"Extracting {extracting} of {total_layers} layers ({overall_percent}%)"
        elif complete == total_layers:
            cache_text = f" ({cached} cached)" if cached > 0 else ""
            summary = f"Pull complete ({total_layers} layers{cache_text})"
        else:
            summary = f"Pulling image ({overall_percent}%)"

        return PullProgress(
            overall_percent=overall_percent,
            layers_total=total_layers,
            layers_complete=complete,
            downloading=downloading,
            extracting=extracting,
            bytes_downloaded=downloaded_bytes,
            bytes_total=total_bytes,
            summary=summary,
            digest=self.digest,
        )

    def finish(self) -> PullProgress:
        """Final 100% snapshot once the stream ended without error."""
        for data in self.layer_status.values():
            if data['status'] not in DONE_STATUSES:
                data['status'] = 'Pull complete'
                data['current'] = data['total']
        progress = self.snapshot(overall_percent=100)
        logger.info(
            f"Pulled {self.image}: {progress.layers_total} layers "
            f"({progress.bytes_total / (1024 * 1024):.1f} MB)"
        )
        return progress
