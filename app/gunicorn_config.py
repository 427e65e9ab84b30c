"""
Configuration Gunicorn pour l'API Event Photo Finder

Utilisation (depuis le dossier app/):
    gunicorn main:app -c gunicorn_config.py

Variables d'environnement:
    GUNICORN_WORKERS      : Nombre de workers (défaut: 2)
    GUNICORN_THREADS      : Threads par worker (défaut: 4)
    GUNICORN_MAX_REQUESTS : Nombre de requêtes avant recyclage (défaut: 0 = désactivé)
    PORT                  : Port d'écoute (défaut: 8000)

Les handlers qui appellent S3/Rekognition sont synchrones et tournent dans le
threadpool de FastAPI: un regroupement de visages bloque un thread pendant
toute la durée de ses appels CompareFaces séquentiels.
"""
import os

# ========== WORKERS ==========
workers = int(os.getenv("GUNICORN_WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"  # Async workers pour FastAPI
threads = int(os.getenv("GUNICORN_THREADS", "4"))

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "0"))
max_requests_jitter = 50 if max_requests > 0 else 0  # Variabilité seulement si recyclage actif

# Timeout (secondes): les regroupements O(n²) peuvent être longs
timeout = 300
graceful_timeout = 30

# ========== CONNEXIONS ==========
keepalive = 5

# ========== LOGS ==========
accesslog = "-"  # Stdout
errorlog = "-"   # Stderr
loglevel = os.getenv("LOG_LEVEL", "info").lower()

# ========== BIND ==========
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"

preload_app = False

# ========== HOOKS ==========
def on_starting(server):
    """Callback au démarrage du serveur"""
    server.log.info(
        f"Event Photo Finder: workers={workers} worker_class={worker_class} "
        f"threads={threads} timeout={timeout}s bind={bind}"
    )

def worker_exit(server, worker):
    """Callback lors de la sortie d'un worker"""
    server.log.warning(f"Worker {worker.pid} exited")
