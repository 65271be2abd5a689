"""Hardware layer — Board detection.

Used by :meth:`~pihub.hardware.provider.ResourceProvider.from_config` when the
configured backend is ``"auto"``.  Detection runs once per process.
"""

from __future__ import annotations

import functools
import platform
from pathlib import Path


@functools.lru_cache(maxsize=1)
def is_raspberry_pi() -> bool:
    """Return True if we are running on a Raspberry Pi."""
    if platform.system() != "Linux":
        return False

    # /proc/cpuinfo works on all Pi models; the device-tree model file on newer kernels.
    for candidate in (Path("/proc/cpuinfo"), Path("/proc/device-tree/model")):
        if not candidate.exists():
            continue
        try:
            if "Raspberry Pi" in candidate.read_text(errors="replace"):
                return True
        except OSError:
            continue
    return False
