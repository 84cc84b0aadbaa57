from __future__ import annotations
import subprocess
from pathlib import Path
from typing import Optional
from fastapi import APIRouter, Request

router = APIRouter()

def get_git_commit_hash() -> Optional[str]:
    """Obtém o hash do commit git atual."""
    try:
        return (
            subprocess.check_output(
                ["git", "rev-parse", "HEAD"],
                cwd=Path(__file__).parent.parent,
                stderr=subprocess.DEVNULL,
            )
            .decode()
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        return None

@router.get("/")
async def root(request: Request):
    """Endpoint raiz para verificações de uptime."""
    settings = request.app.state.settings
    return {
        "ok": True,
        "service": settings.service_name,
        "version": request.app.version,
        "commit": get_git_commit_hash(),
        "env": {"log_level": settings.log_level},
    }

@router.get("/health")
async def health_check():
    """Endpoint simples de health check."""
    return {"ok": True}
