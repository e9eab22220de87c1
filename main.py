"""
=============================================================================
MAIN.PY — La API de NexoQuest
=============================================================================
Endpoints REST del motor de progresión.

Organización por secciones:
  1. AUTH          → Registro, login, perfil
  2. DAILY         → Enviar el día y consultarlo
  3. PROGRESIÓN    → XP, atributos, modo hardcore, inventario y objetos
  4. LOGROS        → Catálogo con desbloqueos
  5. COMBATE       → Jefe activo y campaña
  6. MISIONES      → Listar, generar, abandonar
"""

import logging
import traceback
from datetime import datetime, date
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db, init_db, SessionLocal
from models import User
from schemas import (
    UserRegister, UserLogin, TokenResponse, UserResponse,
    DailySubmission, DailySubmissionResponse, DailyLogResponse,
    RetroactiveGrantResponse,
    XpStatusResponse, SkillResponse, HardcoreToggle,
    InventoryItemResponse, ConsumeItem, ConsumeItemResponse, ActiveBuffResponse,
    AchievementResponse, ActiveBossResponse, CampaignStatusResponse,
    QuestResponse, QuestListResponse, QuestAbandon
)
from auth import hash_password, authenticate_user, create_access_token, get_current_user
from daily import (
    SubmissionError, SubmissionPersistenceError, submit_daily_log, get_daily_log
)
from gamification import (
    seed_items, get_xp_status, get_skills, set_hardcore_mode, FeatureLockedError
)
from achievements import seed_achievements, list_achievements
from combat import seed_bosses, seed_campaign, get_active_boss, encounter_to_dict, get_campaign_status
from quests import list_quests, generate_quest, abandon_quest, QuestError
from inventory import list_inventory, list_active_buffs, consume_item, InventoryError, ItemNotOwnedError

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("nexoquest.api")


def seed_all(db: Session):
    """Catálogos del juego: logros, objetos, jefes y campaña"""
    seed_achievements(db)
    seed_items(db)
    seed_bosses(db)
    seed_campaign(db)


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque:
      1. Crear tablas si no existen
      2. Seeds de catálogos
      3. Scheduler de mantenimiento diario (si SCHEDULER_ENABLED)
    """
    logger.info("🚀 Arrancando NexoQuest...")

    init_db()
    logger.info("✅ Base de datos inicializada")

    db = SessionLocal()
    try:
        seed_all(db)
    finally:
        db.close()

    from scheduler import SCHEDULER_ENABLED, create_scheduler, start_scheduler, stop_scheduler
    if SCHEDULER_ENABLED:
        create_scheduler()
        start_scheduler()
    else:
        logger.warning("⚠️ Scheduler desactivado (SCHEDULER_ENABLED=false)")

    logger.info("🎉 NexoQuest operativo")

    yield

    logger.info("🛑 Apagando NexoQuest...")
    stop_scheduler()
    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="NexoQuest API",
    description="Motor de puntuación y progresión RPG para el seguimiento de hábitos",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# ERRORES
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    """
    Envío rechazado:
      - validación → 400 (403 si falta el permiso retroactivo)
      - fallo al guardar → 503, se puede reintentar
    """
    if isinstance(exc, SubmissionPersistenceError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif exc.code == "retroactive_edit_required":
        status_code = status.HTTP_403_FORBIDDEN
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve un JSON con el detalle"""
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    return {
        "status": "ok",
        "app": "NexoQuest",
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: AUTH =======================================
# =============================================================================

@app.post("/auth/register", response_model=TokenResponse, status_code=201, tags=["Auth"])
def register(data: UserRegister, db: Session = Depends(get_db)):
    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ya existe una cuenta con este email"
        )

    user = User(email=email, password_hash=hash_password(data.password), name=data.name)
    if data.timezone:
        user.timezone = data.timezone
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"👤 Nuevo jugador registrado: {user.name} ({user.email})")
    return TokenResponse(access_token=create_access_token(user.id, user.email), user_id=user.id, name=user.name)


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
def login(data: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.email, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email o contraseña incorrectos"
        )
    return TokenResponse(access_token=create_access_token(user.id, user.email), user_id=user.id, name=user.name)


@app.get("/auth/me", response_model=UserResponse, tags=["Auth"])
def get_me(user: User = Depends(get_current_user)):
    return user


# =============================================================================
# ===================== SECCIÓN 2: DAILY ======================================
# =============================================================================

@app.post("/daily", response_model=DailySubmissionResponse, tags=["Daily"])
def submit_daily(
    data: DailySubmission,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Envía (o reemplaza) el registro de un día.
    Los errores de validación y de guardado los traduce submission_error_handler.
    """
    return submit_daily_log(db, user, data)


@app.get("/daily/{log_date}", response_model=DailyLogResponse, tags=["Daily"])
def read_daily(log_date: date, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_daily_log(db, user, log_date)


# =============================================================================
# ===================== SECCIÓN 3: PROGRESIÓN =================================
# =============================================================================

@app.get("/gamification/xp", response_model=XpStatusResponse, tags=["Progresión"])
def xp_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_xp_status(db, user)


@app.get("/gamification/skills", response_model=list[SkillResponse], tags=["Progresión"])
def skills(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_skills(db, user)


@app.put("/settings/hardcore", response_model=XpStatusResponse, tags=["Progresión"])
def toggle_hardcore(
    data: HardcoreToggle,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        set_hardcore_mode(db, user, data.active)
    except FeatureLockedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return get_xp_status(db, user)


@app.get("/inventory", response_model=list[InventoryItemResponse], tags=["Inventario"])
def inventory(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_inventory(db, user)


@app.get("/inventory/buffs", response_model=list[ActiveBuffResponse], tags=["Inventario"])
def active_buffs(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_active_buffs(db, user)


@app.post("/inventory/consume", response_model=ConsumeItemResponse, tags=["Inventario"])
def use_item(data: ConsumeItem, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Gasta una unidad de un objeto. El Pergamino del Ayer devuelve el
    permiso para registrar un día pasado.
    """
    try:
        result = consume_item(db, user, data.item_id)
    except ItemNotOwnedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InventoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ConsumeItemResponse(
        item=result["item"],
        effect_type=result["effect_type"],
        message=result["message"],
        remaining=result["remaining"],
        buff=ActiveBuffResponse.model_validate(result["buff"]) if result["buff"] else None,
        grant=RetroactiveGrantResponse.model_validate(result["grant"]) if result["grant"] else None,
    )


# =============================================================================
# ===================== SECCIÓN 4: LOGROS =====================================
# =============================================================================

@app.get("/achievements", response_model=list[AchievementResponse], tags=["Logros"])
def achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_achievements(db, user)


# =============================================================================
# ===================== SECCIÓN 5: COMBATE ====================================
# =============================================================================

@app.get("/bosses/active", response_model=Optional[ActiveBossResponse], tags=["Combate"])
def active_boss(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return encounter_to_dict(get_active_boss(db, user))


@app.get("/campaign/status", response_model=CampaignStatusResponse, tags=["Combate"])
def campaign_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_campaign_status(db, user)


# =============================================================================
# ===================== SECCIÓN 6: MISIONES ===================================
# =============================================================================

@app.get("/quests", response_model=QuestListResponse, tags=["Misiones"])
def quests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = list_quests(db, user)
    return QuestListResponse(
        active=[QuestResponse.model_validate(q) for q in data["active"]],
        recent_completed=[QuestResponse.model_validate(q) for q in data["recent_completed"]],
    )


@app.post("/quests", response_model=QuestResponse, status_code=201, tags=["Misiones"])
def new_quest(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return generate_quest(db, user)
    except QuestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.delete("/quests", tags=["Misiones"])
def delete_quests(data: QuestAbandon, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Abandona una misión por id, o todas las activas con {"id": "all"}"""
    deleted = abandon_quest(db, user, data.id)
    if deleted == 0 and data.id != "all":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Misión no encontrada")
    return {"message": "Misión(es) abandonada(s)", "deleted": deleted}
