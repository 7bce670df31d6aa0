"""
apkforge.integrations - External Service Integration Layer
============================================================

Adapters for everything apkforge talks to outside its own process. Each is
abstracted behind an interface so implementations can be swapped
(in-memory ↔ Redis, in-memory ↔ MinIO, real tools ↔ fake tools).

Sub-packages / modules:
    toolchain        - argv rendering and preflight for unpack / repack / sign
    metadata/        - artifact record backends (memory, Redis)
    object_storage/  - remote artifact mirror (memory, MinIO)
"""

__all__: list[str] = []
