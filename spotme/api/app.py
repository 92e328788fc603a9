"""FastAPI application driving a face scan session.

Workflow:
1. POST /api/candidates   register the photos to scan
2. POST /api/capture      switch to reference capture
3. POST /api/reference    upload a selfie; starts the scan in the background
4. GET  /api/status       poll progress and ETA
5. GET  /api/matches      photos found so far (final once state is COMPLETE)

POST /api/cancel soft-stops the scan; /api/exit-to-gallery and /api/exit
reset the session.
"""

import logging
from typing import Callable, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, UploadFile
from pydantic import BaseModel

from ..errors import DescriptorServiceError, ImageLoadError, NoFaceDetectedError
from ..faces.client import DescriptorClient
from ..faces.service import DescriptorService
from ..scanner.coordinator import CONCURRENCY_LIMIT
from ..scanner.image_loader import ImageLoader
from ..scanner.models import Candidate
from ..scanner.session import ScanSession

logger = logging.getLogger(__name__)


class CandidateItem(BaseModel):
    """One photo to register: a local path or a remote URL."""
    path: Optional[str] = None
    url: Optional[str] = None
    name: Optional[str] = None


class CandidatesRequest(BaseModel):
    """Model for candidate registration."""
    photos: List[CandidateItem]


def to_candidates(items: List[CandidateItem]) -> List[Candidate]:
    candidates = []
    for i, item in enumerate(items):
        if item.url:
            candidates.append(Candidate.from_url(item.url, i, name=item.name))
        elif item.path:
            candidates.append(Candidate.from_path(item.path, i))
        else:
            raise HTTPException(status_code=400, detail=f"Photo {i} needs a path or url")
    return candidates


def create_app(
    service: Optional[DescriptorService] = None,
    loader_factory: Callable[[], ImageLoader] = ImageLoader,
    concurrency: int = CONCURRENCY_LIMIT,
    item_timeout: Optional[float] = None,
) -> FastAPI:
    """Create FastAPI application for face scanning."""

    app = FastAPI(
        title="SpotMe",
        description="Find the photos in a gallery that contain your face",
        version="0.1.0",
    )
    owns_service = service is None
    session = ScanSession(
        service or DescriptorClient(),
        loader_factory=loader_factory,
        concurrency=concurrency,
        item_timeout=item_timeout,
    )
    app.state.session = session

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the descriptor client created here."""
        if owns_service:
            await session.service.aclose()

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.post("/api/candidates")
    async def register_candidates(request: CandidatesRequest):
        """Register the gallery to scan."""
        try:
            session.set_candidates(to_candidates(request.photos))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "total": len(session.candidates)}

    @app.get("/api/candidates")
    async def get_candidates():
        return {"photos": [c.to_dict() for c in session.candidates]}

    @app.post("/api/capture")
    async def begin_capture():
        """Switch the session to reference capture."""
        try:
            session.begin_capture()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"success": True, "state": session.state.value}

    @app.post("/api/reference")
    async def upload_reference(background_tasks: BackgroundTasks, file: UploadFile = File(...)):
        """Capture the reference face from an uploaded photo and start scanning."""
        if session.running:
            raise HTTPException(status_code=409, detail="Already processing")
        if not session.candidates:
            raise HTTPException(status_code=400, detail="Register photos before capturing a face")

        data = await file.read()
        try:
            await session.set_reference(data)
        except NoFaceDetectedError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except ImageLoadError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except DescriptorServiceError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))

        try:
            generation = session.prepare_scan()
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))
        background_tasks.add_task(session.run_scan, generation)
        return {"success": True, "message": "Scan started", "total": len(session.candidates)}

    @app.get("/api/status")
    async def get_status():
        """Current state, counts and ETA."""
        return session.status()

    @app.get("/api/matches")
    async def get_matches():
        """Photos containing the reference face, in discovery order."""
        matches = session.matches
        return {
            "state": session.state.value,
            "count": len(matches),
            "matches": [c.to_dict() for c in matches],
        }

    @app.post("/api/cancel")
    async def cancel_scan():
        """Stop launching further work; in-flight photos still finish."""
        session.cancel()
        return {"success": True}

    @app.post("/api/exit-to-gallery")
    async def exit_to_gallery():
        session.exit_to_gallery()
        return {"success": True, "state": session.state.value}

    @app.post("/api/exit")
    async def full_exit():
        session.full_exit()
        return {"success": True, "state": session.state.value}

    return app
