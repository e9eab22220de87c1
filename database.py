"""
=============================================================================
DATABASE.PY — Conexión y sesiones de la Base de Datos
=============================================================================
En local se usa SQLite (un archivo .db). En producción, si existe la
variable de entorno DATABASE_URL, se usa PostgreSQL con el driver psycopg v3.

El motor de puntuación necesita UNA sola primitiva transaccional:
la sesión de SQLAlchemy. Todo lo que se hace entre dos db.commit()
se escribe junto o no se escribe (ver daily.py).
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nexoquest.db")

# Los proveedores dan la URL con "postgres://", SQLAlchemy + psycopg v3
# necesita "postgresql+psycopg://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

engine_args = {}
if DATABASE_URL.startswith("sqlite"):
    # SQLite no permite compartir conexión entre hilos por defecto
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, **engine_args)

# autoflush=False → nada llega a la BD hasta que lo pedimos explícitamente.
# Importante para que la transacción del registro diario sea atómica.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: abre una sesión por petición y la cierra al final.

      @app.get("/algo")
      def mi_endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Crea todas las tablas que falten. Se llama una vez al arrancar."""
    # Importar los modelos registra sus tablas en Base.metadata
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
