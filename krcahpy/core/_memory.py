from __future__ import annotations

import os

import psutil
import torch


# Rough float64 working-set per voxel for each voxel pass (inputs + temporaries).
BYTES_PER_VOXEL = {
    "statistics": 8 * 12,
    "functor": 8 * 16,
    "hessian": 8 * 32,
}


def _parse_mem_env_to_bytes(raw: str) -> int | None:
    """Parse common scheduler memory strings to bytes."""

    s = str(raw).strip()
    if not s:
        return None

    # Numeric without suffix: assume MB for common schedulers.
    if s.isdigit():
        return int(s) * 1024 * 1024

    s_up = s.upper()
    mult = None
    for suffix, m in (('KB', 1024), ('K', 1024), ('MB', 1024**2), ('M', 1024**2), ('GB', 1024**3), ('G', 1024**3)):
        if s_up.endswith(suffix):
            mult = m
            s_up = s_up[: -len(suffix)].strip()
            break

    if mult is None:
        return None

    try:
        return int(float(s_up) * mult)
    except ValueError:
        return None


def _effective_cpu_memory_limit_bytes() -> int | None:
    """Memory limit from schedulers/cgroups (bytes)."""

    candidates: list[int] = []

    for key in ("SLURM_MEM_PER_NODE", "SLURM_MEM_PER_CPU", "PBS_VMEM", "PBS_RESC_MEM", "LSB_MAX_MEM"):
        v = os.environ.get(key)
        if not v:
            continue
        b = _parse_mem_env_to_bytes(v)
        if b is not None and b > 0:
            candidates.append(int(b))

    # cgroup v2 first, then v1. v1 reports a huge number when unlimited.
    for path in ("/sys/fs/cgroup/memory.max", "/sys/fs/cgroup/memory/memory.limit_in_bytes"):
        try:
            if os.path.exists(path):
                with open(path, "r", encoding="utf-8") as fh:
                    raw = fh.read().strip()
                if raw.isdigit():
                    b = int(raw)
                    if 0 < b < 1 << 60:
                        candidates.append(b)
        except OSError:
            pass

    return min(candidates) if candidates else None


def get_effective_available_cpu_memory_bytes() -> int:
    """Available CPU memory to budget against, respecting job/cgroup limits when possible."""

    available = int(psutil.virtual_memory().available)
    limit = _effective_cpu_memory_limit_bytes()
    if limit is None:
        return available
    return int(min(available, limit))


def effective_worker_count() -> int:
    """Worker count (use scheduler hints when present)."""

    for key in ("SLURM_CPUS_PER_TASK", "SLURM_CPUS_ON_NODE", "OMP_NUM_THREADS"):
        v = os.environ.get(key, "").strip()
        if not v:
            continue
        try:
            n = int(v)
            if n > 0:
                return n
        except ValueError:
            pass
    return int(psutil.cpu_count(logical=False) or psutil.cpu_count() or 1)


def get_available_cuda_memory_bytes() -> int:
    """Get available CUDA memory (current device)."""

    try:
        if not torch.cuda.is_available():
            return 0
        idx = int(torch.cuda.current_device())
        total = int(torch.cuda.get_device_properties(idx).total_memory)
        reserved = int(torch.cuda.memory_reserved(idx))
        return max(0, total - reserved)
    except RuntimeError:
        return 0


def cpu_chunk_size(n_voxels: int, kind: str) -> int:
    n_workers = max(1, int(0.80 * effective_worker_count()))
    avail_bytes = get_effective_available_cpu_memory_bytes()
    mem_safe = int((0.25 * avail_bytes / n_workers) // BYTES_PER_VOXEL[kind])
    return max(1, min(mem_safe, max(int(n_voxels), 1)))


def cuda_chunk_size(n_voxels: int, kind: str) -> int:
    """Chunk size from current free GPU memory (25% of it, bounded)."""
    available_memory = get_available_cuda_memory_bytes()
    chunk = int(0.25 * available_memory / BYTES_PER_VOXEL[kind])
    min_chunk = 4096
    return max(1, min(max(chunk, min_chunk), max(int(n_voxels), 1)))


DEFAULT_MEMORY_MANAGER_OPTIONS = {'cpu': cpu_chunk_size,
                                  'cuda': cuda_chunk_size}


class memory_manager:
    def __init__(self, device: str, kind: str) -> None:
        self.DEVICE = 'cuda' if str(device).startswith('cuda') else 'cpu'
        self.KIND = kind
        pass

    def __call__(self, n_voxels: int) -> int:
        return DEFAULT_MEMORY_MANAGER_OPTIONS[self.DEVICE](n_voxels, self.KIND)
