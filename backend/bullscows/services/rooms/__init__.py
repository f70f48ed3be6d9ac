"""Room services: lifecycle (create/join/presence/settings/chat/music) and the
per-viewer state projection."""
