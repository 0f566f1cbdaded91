"""Backend core for docforge: on-demand documents handed back as short-lived downloads.

This package intentionally keeps FastAPI route handlers thin:
- document assembly (PDF merge, raster transcode, text pagination + printing)
- artifact store with atomic writes and allow-list id validation
- TTL sweep and post-download deferred deletion

Security note:
Artifact ids are treated as capability tokens (timestamp + random suffix). Anyone
with the id can download the artifact until it is reclaimed, so never log or
expose filesystem paths in responses.
"""
