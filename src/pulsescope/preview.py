"""
Live preview window for a running analysis session.

Opens a pygame window, ticks the analyzer once per display frame and
draws the smoothed waveform, the spectrum and the BPM / key readouts.

Usage (via CLI):
    pulsescope --preview
    pulsescope --demo 128 --preview

Keyboard controls while previewing:
    ESC / Q      - quit
    SPACE        - pause / resume (the session keeps its state)
"""

from __future__ import annotations

from typing import Any

import numpy as np

BACKGROUND = (8, 12, 26)
WAVE_COLOR = (44, 110, 245)
BAR_COLOR = (90, 150, 250)
TEXT_COLOR = (200, 200, 200)


def _waveform_points(waveform: np.ndarray, rect) -> list[tuple[float, float]]:
    """Polyline points for a byte waveform inside ``rect`` (x, y, w, h)."""
    x0, y0, w, h = rect
    n = len(waveform)
    if n < 2:
        return [(x0, y0 + h / 2), (x0 + w, y0 + h / 2)]
    xs = x0 + np.arange(n) * (w / (n - 1))
    ys = y0 + (waveform.astype(np.float64) / 255.0) * h
    return list(zip(xs.tolist(), ys.tolist()))


def draw_features(surface: Any, features: Any, font: Any) -> None:
    """
    Draw one LiveFeatures snapshot onto a pygame surface.

    Top third: waveform.  Middle: spectrum bars (every other bin).
    Bottom: BPM and key, "--" while unknown.
    """
    import pygame

    width, height = surface.get_size()
    surface.fill(BACKGROUND)

    wave_rect = (0, 0, width, height // 3)
    pygame.draw.lines(surface, WAVE_COLOR, False, _waveform_points(features.waveform, wave_rect), 2)

    spectrum = features.spectrum
    if len(spectrum):
        top = height // 3
        band_h = height // 3
        shown = spectrum[::2]
        bar_w = max(1, width // len(shown))
        for i, value in enumerate(shown):
            bar_h = int(value / 255.0 * band_h)
            if bar_h:
                pygame.draw.rect(surface, BAR_COLOR, (i * bar_w, top + band_h - bar_h, bar_w, bar_h))

    bpm_text = str(features.bpm) if features.bpm else "--"
    key_text = features.key or "--"
    label = font.render(f"BPM {bpm_text}    Key {key_text}", True, TEXT_COLOR)
    surface.blit(label, (12, 2 * height // 3 + 12))


def run_preview(
    analyzer: Any,
    fps: int = 60,
    size: tuple[int, int] = (900, 600),
    title: str = "pulsescope",
) -> None:
    """
    Run the analyzer inside a pygame window until the user quits.

    Args:
        analyzer: A RealtimeAnalyzer; started here if not running, always
                  stopped on exit.
        fps:      Target tick / redraw rate.
        size:     Window size in pixels.
        title:    Window title string.
    """
    try:
        import pygame
    except ImportError:
        print(
            "Live preview requires pygame.\n"
            "Install it with:  pip install pygame"
        )
        analyzer.stop()
        return

    pygame.init()
    screen = pygame.display.set_mode(size)
    pygame.display.set_caption(title)
    clock = pygame.time.Clock()
    font = pygame.font.SysFont(None, 36)

    if not analyzer.is_running:
        analyzer.start()

    paused = False
    running = True
    try:
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    if event.key in (pygame.K_ESCAPE, pygame.K_q):
                        running = False
                    elif event.key == pygame.K_SPACE:
                        paused = not paused

            if not running:
                break

            if not paused:
                features = analyzer.tick()
                draw_features(screen, features, font)
                pygame.display.flip()

            clock.tick(fps)
    finally:
        analyzer.stop()
        pygame.quit()
