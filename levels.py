"""Audio level extraction for the visual level meter."""

from __future__ import annotations

import threading
from typing import Optional

import numpy as np

from models import AudioFrame

BAND_COUNT = 8


class LevelExtractor:
    """Derives a fixed set of pseudo-frequency band levels from audio frames.

    Bands are amplitude averages over contiguous slices of each frame, mixed
    with the overall RMS level and weighted so later bands read slightly
    hotter. New values only raise the current levels; a background ticker
    lowers them linearly so the meter falls off smoothly between frames.
    """

    def __init__(
        self,
        band_count: int = BAND_COUNT,
        decay_rate: float = 0.12,
        tick_interval_s: float = 0.05,
        band_gain: float = 25.0,
        floor_db: float = -60.0,
        range_db: float = 50.0,
    ) -> None:
        self.band_count = band_count
        self.decay_rate = decay_rate
        self.tick_interval_s = tick_interval_s
        self._band_gain = band_gain
        self._floor_db = floor_db
        self._range_db = range_db

        self._lock = threading.Lock()
        self._levels = np.zeros(band_count, dtype=np.float32)
        self._peak = 0.0
        self._ticker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def peak_level(self) -> float:
        return self._peak

    def snapshot(self) -> list[float]:
        with self._lock:
            return [float(v) for v in self._levels]

    def process(self, frame: AudioFrame) -> None:
        if frame.frame_count == 0:
            return
        bands, level = self.compute_bands(frame.samples)
        with self._lock:
            np.maximum(self._levels, bands, out=self._levels)
            self._peak = level

    def compute_bands(self, samples: np.ndarray) -> tuple[np.ndarray, float]:
        samples = np.asarray(samples, dtype=np.float32)
        rms = float(np.sqrt(np.mean(np.square(samples))))
        db = 20.0 * np.log10(max(rms, 1e-5))
        level = float(np.clip((db - self._floor_db) / self._range_db, 0.0, 1.0))

        band_size = samples.shape[0] // self.band_count
        if band_size > 0:
            sliced = samples[: band_size * self.band_count].reshape(self.band_count, band_size)
            averages = np.abs(sliced).mean(axis=1)
        else:
            averages = np.zeros(self.band_count, dtype=np.float32)

        band_levels = np.clip(averages * self._band_gain, 0.0, 1.0)
        weights = 0.7 + np.arange(self.band_count, dtype=np.float32) * 0.08
        bands = np.minimum(1.0, band_levels + level * weights).astype(np.float32)
        return bands, level

    def tick(self) -> None:
        with self._lock:
            np.maximum(self._levels - self.decay_rate, 0.0, out=self._levels)
            self._peak = max(0.0, self._peak - self.decay_rate)

    def reset(self) -> None:
        with self._lock:
            self._levels[:] = 0.0
            self._peak = 0.0

    # ------------------------------------------------------------------
    # Decay ticker
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._ticker and self._ticker.is_alive():
            return
        self._stop_event.clear()
        self._ticker = threading.Thread(target=self._run_ticker, daemon=True)
        self._ticker.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._ticker and self._ticker.is_alive():
            self._ticker.join(timeout=0.5)
        self._ticker = None

    def _run_ticker(self) -> None:
        while not self._stop_event.wait(self.tick_interval_s):
            self.tick()
