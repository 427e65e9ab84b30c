from typing import Dict, Optional
from threading import Lock, local
from contextlib import contextmanager
import time


ACTION_LABELS = {
    'upload': "Upload de photos",
    'upload_event': "Upload de photos dans un événement",
    'event_gallery': "Chargement de la galerie (DetectFaces + CompareFaces)",
    'selfie_match': "Recherche par selfie",
}

MAX_ACTION_LOG = 500


class AwsMetrics:
    """Compteurs en mémoire des appels S3 / Rekognition et coût estimé.

    NOTE: propres au processus; remis à zéro à chaque redémarrage.
    """

    PRICES_USD = {
        # Tarifs publics approximatifs. Rekognition facture par image analysée.
        'DetectFaces': 0.001,           # $1.00 / 1000 images
        'CompareFaces': 0.001,          # $1.00 / 1000 comparaisons
        'PutObject': 0.000005,          # $0.005 / 1000 requêtes
        'CopyObject': 0.000005,
        'ListObjectsV2': 0.000005,
        'DeleteObject': 0.0,
    }

    def __init__(self) -> None:
        self._lock = Lock()
        self._tls = local()
        self.reset()

    def _cost(self, counts: Dict[str, int]) -> float:
        return sum(float(c) * self.PRICES_USD.get(op, 0.0) for op, c in counts.items())

    def inc(self, op: str, n: int = 1) -> None:
        action = self.current_action()
        with self._lock:
            self._counts[op] = self._counts.get(op, 0) + n
            if action:
                bucket = self._actions.setdefault(action, {})
                bucket[op] = bucket.get(op, 0) + n

    def reset(self) -> None:
        with self._lock:
            self._counts: Dict[str, int] = {}
            self._actions: Dict[str, Dict[str, int]] = {}
            self._action_log: list = []
            self._since_ts = time.time()

    def count(self, op: str) -> int:
        with self._lock:
            return self._counts.get(op, 0)

    def current_action(self) -> Optional[str]:
        return getattr(self._tls, 'action', None)

    def snapshot(self) -> Dict:
        with self._lock:
            counts = dict(self._counts)
            return {
                'since': self._since_ts,
                'counts': counts,
                'costs': {op: round(c * self.PRICES_USD.get(op, 0.0), 6) for op, c in counts.items()},
                'total_cost_usd': round(self._cost(counts), 6),
                'actions': {k: dict(v) for k, v in self._actions.items()},
                'action_log': list(self._action_log),
            }

    @staticmethod
    def describe(action: str) -> str:
        """'selfie_match:jane_doe' -> 'Recherche par selfie (jane_doe)'"""
        kind, _, subject = action.partition(':')
        label = ACTION_LABELS.get(kind)
        if not label:
            return action
        return f"{label} ({subject})" if subject else label

    @contextmanager
    def attributed_to(self, action: Optional[str]):
        """Rattache les appels du thread courant à une action déjà ouverte (threads de travail)."""
        prev = self.current_action()
        self._tls.action = action
        try:
            yield
        finally:
            self._tls.action = prev

    @contextmanager
    def action_context(self, action: str):
        """Ouvre une action (ex: 'selfie_match:user_x') et la journalise à la sortie."""
        started = time.time()
        with self._lock:
            self._actions.setdefault(action, {})
        try:
            with self.attributed_to(action):
                yield
        finally:
            with self._lock:
                counts = dict(self._actions.get(action, {}))
                self._action_log.append({
                    'ts': started,
                    'action': action,
                    'description': self.describe(action),
                    'duration_sec': round(time.time() - started, 3),
                    'counts': counts,
                    'cost_usd': round(self._cost(counts), 6),
                })
                del self._action_log[:-MAX_ACTION_LOG]


aws_metrics = AwsMetrics()
