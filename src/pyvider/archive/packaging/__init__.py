"""
The `packaging` sub-package contains the container engine for PVAR archives.

This includes:
- Encoding and decoding the on-disk layout (`codec`).
- Read access to opened archives (`container`).
- Transactional, atomically committed builds (`builder`).
- Unpacking archives back into directory trees (`extractor`).
"""
