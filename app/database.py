from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from settings import settings

# Configuration de la base de données
DATABASE_URL = settings.DATABASE_URL

# Si c'est PostgreSQL, ajuster l'URL pour SQLAlchemy
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

if DATABASE_URL.startswith("sqlite"):
    # Pour SQLite, désactiver check_same_thread (handlers sync exécutés dans le threadpool)
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
else:
    # Options de pool pour éviter les connexions mortes
    engine_kwargs = {
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
    }

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Fonction pour créer toutes les tables
def create_tables(bind=None):
    Base.metadata.create_all(bind=bind or engine)

# Fonction pour obtenir une session de base de données
def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        # En cas d'exception non gérée, s'assurer que la transaction est rollback
        db.rollback()
        raise
    finally:
        db.close()
