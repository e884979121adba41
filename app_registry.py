"""Catalog of the apps the dashboard knows how to build.

Each app is registered once with a factory; the config file decides which of
them are enabled and in which order they rotate.
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from apps import App
    from matrix_display import MatrixDisplay

log = logging.getLogger(__name__)

AppFactory = Callable[["MatrixDisplay"], "App"]


@dataclass(frozen=True)
class AppDefinition:
    name: str
    class_name: str
    enabled: bool
    factory: AppFactory


class AppRegistry:
    def __init__(self) -> None:
        self._apps: Dict[str, AppDefinition] = {}

    def register(self, definition: AppDefinition) -> None:
        if definition.class_name in self._apps:
            log.debug("replacing registration of %s", definition.class_name)
        self._apps[definition.class_name] = definition

    def get(self, class_name: str) -> Optional[AppDefinition]:
        return self._apps.get(class_name)

    def definitions(self) -> List[AppDefinition]:
        return list(self._apps.values())

    def create(self, class_name: str, display: "MatrixDisplay") -> Optional["App"]:
        definition = self._apps.get(class_name)
        if definition is None:
            return None
        return definition.factory(display)

    def create_enabled(self, display: "MatrixDisplay", class_names: Iterable[str]) -> List["App"]:
        """Build the enabled apps in config order; unknown or failing apps are skipped."""
        apps: List["App"] = []
        for class_name in class_names:
            try:
                app = self.create(class_name, display)
            except Exception:  # noqa: BLE001
                log.exception("failed to create app %s", class_name)
                continue
            if app is None:
                log.warning("failed to create app %s: not registered", class_name)
                continue
            apps.append(app)
        return apps


def register_default_apps(registry: AppRegistry, settings: Optional[argparse.Namespace] = None) -> None:
    """Register the bundled apps, configured from the command line settings."""
    from clock_app import ClockApp
    from departures_app import DeparturesApp
    from now_playing_app import NowPlayingApp, spotify_client_from_env
    from pattern_app import PatternApp
    from status_app import StatusApp
    from weather_app import WeatherApp

    s = settings or argparse.Namespace()
    registry.register(AppDefinition(
        "Clock", "Clock", True,
        lambda d: ClockApp(d, use_24h=not getattr(s, "clock_12h", False)),
    ))
    registry.register(AppDefinition(
        "Weather", "Weather", True,
        lambda d: WeatherApp(d, timeout=getattr(s, "weather_timeout", 4.0)),
    ))
    registry.register(AppDefinition(
        "Departures", "Departures", True,
        lambda d: DeparturesApp(
            d,
            stations=getattr(s, "stations", None) or ["Basel SBB"],
            limit=getattr(s, "departures_limit", 8),
            timeout=getattr(s, "departures_timeout", 5.0),
        ),
    ))
    registry.register(AppDefinition("Status", "Status", True, lambda d: StatusApp(d)))
    registry.register(AppDefinition(
        "Now Playing", "NowPlaying", False,
        lambda d: NowPlayingApp(d, client=spotify_client_from_env()),
    ))
    registry.register(AppDefinition("Test Pattern", "Pattern", False, lambda d: PatternApp(d)))


__all__ = ["AppDefinition", "AppRegistry", "register_default_apps"]
