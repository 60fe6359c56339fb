"""Pygame UI shell for the Stroop trainer.

The Stroop test runs as two timed phases (Word, then Color). Timing, stimulus
generation, scoring and the phase state machine live in stroop_trainer/*
(core modules); this file only presents snapshots and forwards input.
"""

from __future__ import annotations

import logging
import os
import random
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .clock import RealClock
from .cognitive_core import PhaseState, SessionStage, StroopPhase
from .config import ActivityConfig, default_activity_configs, load_activity_configs
from .persistence import SqliteResultStore
from .session import CompletionCheckError, PhaseController, build_stroop_session

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60
FEEDBACK_MS = 500

DB_PATH_ENV = "STROOP_DB_PATH"
ACTIVITIES_PATH_ENV = "STROOP_ACTIVITIES_PATH"
PARTICIPANT_ENV = "STROOP_PARTICIPANT"

STIMULUS_RGB = {
    "red": (235, 64, 52),
    "blue": (66, 133, 244),
    "green": (52, 168, 83),
    "yellow": (251, 188, 5),
    "orange": (255, 140, 0),
    "purple": (155, 89, 182),
    "black": (20, 20, 20),
    "white": (245, 245, 245),
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._items)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._items)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill((3, 9, 78))
        title = self._title_font.render(self._title, True, (238, 245, 255))
        surface.blit(title, title.get_rect(center=(w // 2, h // 6)))

        row_h = 44
        y = h // 3
        for idx, item in enumerate(self._items):
            row = pygame.Rect(w // 4, y, w // 2, row_h - 8)
            selected = idx == self._selected
            pygame.draw.rect(surface, (244, 248, 255) if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = (14, 26, 74) if selected else (238, 245, 255)
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h

        foot = self._hint_font.render("Enter/Space: Select  |  Esc/Backspace: Back", True, (186, 200, 224))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class StroopTestScreen:
    def __init__(self, app: App, *, engine_factory: Callable[[], PhaseController]) -> None:
        self._app = app
        self._engine = engine_factory()
        self._feedback_until_ms = 0
        self._option_hitboxes: list[tuple[pygame.Rect, str]] = []

        self._small_font = pygame.font.Font(None, 26)
        self._mid_font = pygame.font.Font(None, 40)
        self._big_font = pygame.font.Font(None, 110)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            for rect, label in self._option_hitboxes:
                if rect.collidepoint(event.pos):
                    self._answer(label)
                    return
            return
        if event.type != pygame.KEYDOWN:
            return

        snap = self._engine.snapshot()
        if event.key == pygame.K_ESCAPE:
            if self._engine.can_exit():
                self._leave()
            return
        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if snap.stage in (SessionStage.COMPLETE, SessionStage.ALREADY_COMPLETE):
                self._leave()
            elif snap.phase_state is PhaseState.IDLE:
                self._engine.start()
            return
        if event.key == pygame.K_r and snap.error is not None:
            self._engine.retry_submission()
            return
        if pygame.K_1 <= event.key <= pygame.K_9 and snap.options:
            idx = event.key - pygame.K_1
            if idx < len(snap.options):
                self._answer(snap.options[idx])

    def _answer(self, label: str) -> None:
        if self._engine.submit_answer(label):
            self._feedback_until_ms = pygame.time.get_ticks() + FEEDBACK_MS

    def _leave(self) -> None:
        self._engine.close()
        self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        self._engine.update()
        snap = self._engine.snapshot()

        w, h = surface.get_size()
        surface.fill((10, 10, 14))
        text_main = (235, 235, 245)
        text_muted = (180, 180, 190)

        title = self._mid_font.render(snap.title, True, text_main)
        surface.blit(title, (24, 18))
        self._option_hitboxes = []

        if snap.phase_state is not PhaseState.RUNNING or snap.stimulus is None:
            y = 90
            for line in snap.prompt.split("\n"):
                img = self._small_font.render(line, True, text_main)
                surface.blit(img, (40, y))
                y += 30
            if snap.stage in (SessionStage.COMPLETE, SessionStage.ALREADY_COMPLETE):
                hint = "Press Enter to return."
            elif snap.error is not None:
                hint = "Press R to retry saving."
            elif snap.phase_state is PhaseState.IDLE:
                hint = "Press Enter to start. Answer with keys 1-9 or the mouse."
            else:
                hint = ""
            img = self._small_font.render(hint, True, text_muted)
            surface.blit(img, (40, h - 50))
            return

        mm, ss = divmod(max(0, snap.time_remaining_s), 60)
        status = self._small_font.render(
            f"Time {mm:02d}:{ss:02d}    Score {snap.current_score}",
            True,
            text_muted,
        )
        surface.blit(status, status.get_rect(topright=(w - 24, 24)))

        prompt = self._small_font.render(snap.prompt, True, text_main)
        surface.blit(prompt, prompt.get_rect(center=(w // 2, h // 5)))

        stim = snap.stimulus
        rgb = STIMULUS_RGB.get(stim.display_attribute.lower(), text_main)
        word = self._big_font.render(stim.word.upper(), True, rgb)
        surface.blit(word, word.get_rect(center=(w // 2, h // 2 - 20)))

        if snap.feedback is not None and pygame.time.get_ticks() < self._feedback_until_ms:
            ok = snap.feedback == "Correct!"
            fb = self._small_font.render(snap.feedback, True, (52, 168, 83) if ok else (235, 64, 52))
            surface.blit(fb, fb.get_rect(center=(w // 2, h // 2 + 50)))

        count = len(snap.options)
        gap = 12
        btn_w = min(180, (w - 80 - gap * (count - 1)) // max(1, count))
        total = btn_w * count + gap * (count - 1)
        x = (w - total) // 2
        for idx, label in enumerate(snap.options):
            rect = pygame.Rect(x, h - 110, btn_w, 52)
            pygame.draw.rect(surface, (30, 34, 52), rect)
            pygame.draw.rect(surface, (90, 98, 130), rect, 1)
            img = self._small_font.render(f"{idx + 1}. {label}", True, text_main)
            surface.blit(img, img.get_rect(center=rect.center))
            self._option_hitboxes.append((rect, label))
            x += btn_w + gap


class MessageScreen:
    def __init__(self, app: App, title: str, message: str) -> None:
        self._app = app
        self._title = title
        self._message = message

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_RETURN, pygame.K_KP_ENTER):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill((10, 10, 14))
        title = self._app.font.render(self._title, True, (235, 235, 245))
        message = self._app.font.render(self._message, True, (235, 64, 52))
        hint = self._app.font.render("Press Esc to go back.", True, (180, 180, 190))
        surface.blit(title, (40, 40))
        surface.blit(message, (40, 100))
        surface.blit(hint, (40, 160))


def default_db_path() -> Path:
    explicit = os.environ.get(DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".stroop_trainer" / "results.sqlite3"


def _load_configs() -> dict[StroopPhase, ActivityConfig]:
    explicit = os.environ.get(ACTIVITIES_PATH_ENV)
    if explicit:
        return load_activity_configs(Path(explicit).expanduser())
    return default_activity_configs()


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    configs = _load_configs()
    db_path = default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = SqliteResultStore(db_path, participant_id=os.environ.get(PARTICIPANT_ENV, "local"))
    logger.info("results stored in %s", db_path)

    pygame.init()
    pygame.display.set_caption("Stroop Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()

    def open_stroop() -> None:
        seed = _new_seed()
        try:
            screen = StroopTestScreen(
                app,
                engine_factory=lambda: build_stroop_session(
                    clock=real_clock,
                    seed=seed,
                    submitter=store,
                    completion=store,
                    configs=configs,
                ),
            )
        except CompletionCheckError as exc:
            logger.error("cannot open Stroop test: %s", exc)
            app.push(MessageScreen(app, "Stroop Test", "Could not load your previous results."))
            return
        app.push(screen)

    main_items = [
        MenuItem("Stroop Test", open_stroop),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Main Menu", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
