from __future__ import annotations
import json
import logging
import os
import tempfile
from dataclasses import asdict
from typing import Dict, List

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from repvision.common.errors import ConfigurationError, MissingGhostTargetError, UnknownExerciseError
from repvision.common.events import reps_to_csv
from repvision.config import Settings, configure_logging
from repvision.counter.detectors import Exercise
from repvision.counter.pipeline import VideoProcessor
from repvision.counter.pose_core import landmarks_from_dicts
from repvision.counter.session import WorkoutSession
from repvision.ghost.beat import WorkoutMetrics, calculate_beat_ghost, improvement_suggestions, performance_message
from repvision.ghost.targets import GHOST_TARGETS, ghost_target_for
from repvision.runtime.schemas import BeatGhostRequest, BeatGhostResponse, GhostTargetOut

SETTINGS = Settings.from_env()
configure_logging(SETTINGS.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="repvision")


def get_processor() -> VideoProcessor:
    return VideoProcessor(SETTINGS)


@app.get("/favicon.ico")
async def favicon():
    return Response(status_code=204)


@app.get("/exercises")
async def exercises() -> List[str]:
    return [e.value for e in Exercise]


@app.get("/ghost/targets", response_model=List[GhostTargetOut])
async def ghost_targets():
    return [
        GhostTargetOut(
            exercise=ex.value,
            target_reps=t.target_reps,
            target_time=t.target_time,
            target_form_score=t.target_form_score,
            difficulty=t.difficulty.value,
        )
        for ex, t in GHOST_TARGETS.items()
    ]


@app.post("/ghost/beat", response_model=BeatGhostResponse)
async def ghost_beat(req: BeatGhostRequest):
    try:
        target = ghost_target_for(req.exercise)
    except MissingGhostTargetError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownExerciseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = calculate_beat_ghost(WorkoutMetrics(req.reps, req.time, req.form_score), target)
    return BeatGhostResponse.build(result, performance_message(result), improvement_suggestions(result))


@app.post("/videos/process")
async def process_video(
    file: UploadFile = File(...),
    exercise: str = Form(...),
    fmt: str = Query("json", alias="format", pattern="^(json|csv)$"),
    include_video: bool = Query(False),
    processor: VideoProcessor = Depends(get_processor),
):
    suffix = os.path.splitext(file.filename or "")[1] or ".mp4"
    fd, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(await file.read())
        try:
            result = await processor.process_video(path, exercise)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    finally:
        os.remove(path)

    if result is None:
        raise HTTPException(status_code=409, detail="processing cancelled")
    if fmt == "csv":
        return PlainTextResponse(reps_to_csv(result.reps), media_type="text/csv")
    return JSONResponse(result.to_dict(include_video=include_video))


@app.websocket("/ws/landmarks")
async def ws_landmarks(ws: WebSocket, exercise: str = Query(...)):
    await ws.accept()
    outbox: List[Dict] = []
    try:
        session = WorkoutSession(exercise, event_sink=outbox.append)
    except UnknownExerciseError as e:
        await ws.send_json({"type": "error", "msg": str(e)})
        await ws.close(code=1008)
        return

    async def flush():
        while outbox:
            await ws.send_json(outbox.pop(0))

    await flush()
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = None
            if not isinstance(data, dict):
                await ws.send_json({"type": "error", "msg": "invalid json"})
                continue
            kind = data.get("type")
            if kind == "landmarks":
                try:
                    frame = landmarks_from_dicts(data.get("landmarks") or [])
                    session.push_landmarks(frame, data.get("ts"))
                except (AttributeError, TypeError, ValueError):
                    await ws.send_json({"type": "error", "msg": "invalid landmarks"})
                    continue
            elif kind == "pause":
                session.pause()
            elif kind == "resume":
                session.resume()
            elif kind == "status":
                st = session.status()
                outbox.append({"type": "status", **asdict(st)})
            elif kind == "stop":
                result = session.stop()
                await flush()
                await ws.send_json({"type": "summary", **result.to_dict()})
                await ws.close()
                return
            await flush()
    except WebSocketDisconnect:
        logger.info("ws closed: session %s (%d reps)", session.session_id, session.detector.count)
