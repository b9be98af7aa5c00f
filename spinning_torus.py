"""
Terminal-based rotating torus ("donut") rendered as shaded ASCII art.

A fixed point cloud is sampled on the torus surface once. Every frame the cloud is rotated
rigidly in place, projected onto an 80x40 character grid with a closeness (inverse depth) test,
shaded with a height-based luminance heuristic and written to the terminal.

Mathematical Overview:
    - Torus parametric equations (R major radius, r minor radius):
        - `x = (R + r * cos(θ)) * cos(φ)`
        - `y = r * sin(θ)`
        - `z = -(R + r * cos(θ)) * sin(φ)`
    - Rotation: `(y, z)` mixed by angle a, then `(x, y)` mixed by angle b.
    - Projection: `col = floor(W * x / (z + d) + W / 2)`, `row = floor(H * y / (z + d) + H / 2)`.
    - Depth test: the point with the largest `|1 / z|` owns the pixel.
    - Luminance: `-100 * y + 4 * z`, normalized by the frame's brightest winning point.
"""

import logging
import random
import signal
import sys
import threading
import time
import types
from math import cos, sin, pi as π
from typing import Callable, Optional, TextIO

import numpy as np

logger = logging.getLogger(__name__)

# ANSI escape sequences for terminal control.
_CLEAR_SCREEN = "\033[2J"
_HIDE_CURSOR = "\033[?25l"
_SHOW_CURSOR = "\033[?25h"
_DISABLE_BLINK = "\033[?12l"
_ENABLE_BLINK = "\033[?12h"

SCREEN_WIDTH = 80
SCREEN_HEIGHT = 40
VIEWER_DISTANCE = 20.0

MAJOR_RADIUS = 5.0
MINOR_RADIUS = 2.0

# Angular sampling steps (radians) around the hole and around the tube.
OUTER_STEP = 0.07
INNER_STEP = 0.02

FRAME_DELAY = 0.06
RESTEER_INTERVAL = 200
SPIN_LIMIT = 0.3
INITIAL_TILT = (1.0, 0.0)

# Brightest first; a level must be strictly above the threshold.
GLYPH_RAMP = (
    (0.95, "@"),
    (0.9, "$"),
    (0.8, "#"),
    (0.7, "*"),
    (0.6, "!"),
    (0.5, "="),
    (0.4, ";"),
    (0.3, "~"),
    (0.2, ":"),
    (0.1, ","),
)
DARKEST_GLYPH = "."
EMPTY_GLYPH = " "


class TerminalSetupError(RuntimeError):
    """Raised when the terminal cannot be prepared for animation."""


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configure the logger of this module.

    Console output goes to stderr because stdout carries the frames.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO).
        log_file: Optional path to save logs to a file.
    """
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)

    if package_logger.hasHandlers():
        package_logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)


def glyph_for(level: float) -> str:
    """
    Map a normalized luminance to a character of the glyph ramp.

    Args:
        level (float): Luminance divided by the frame's maximum luminance.

    Returns:
        str: The first glyph whose threshold `level` strictly exceeds, else the darkest glyph.
    """
    for threshold, glyph in GLYPH_RAMP:
        if level > threshold:
            return glyph
    return DARKEST_GLYPH


class TerminalSession:
    """
    Context manager owning the terminal for the duration of an animation.

    On enter, clears the screen, hides the cursor and disables cursor blink. On exit, restores the
    cursor and clears the screen, whether the block ended normally or by an exception.

    Usage:
        ```python
        with TerminalSession() as terminal:
            torus.display(terminal)
        ```
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def __enter__(self) -> "TerminalSession":
        """
        Prepare the terminal for rendering.

        Raises:
            TerminalSetupError: If the setup sequence cannot be written.
        """
        try:
            self.stream.write(_CLEAR_SCREEN)
            self.stream.write(_HIDE_CURSOR)
            self.stream.write(_DISABLE_BLINK)
            self.stream.flush()
        except (OSError, ValueError) as err:
            raise TerminalSetupError(f"cannot prepare terminal: {err}") from err
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        """
        Restore terminal state after rendering.

        Args:
            exc_type: Exception type if raised inside the context.
            exc_val: Exception value if raised inside the context.
            exc_tb: Traceback if exception was raised.
        """
        self.stream.write(_ENABLE_BLINK)
        self.stream.write(_SHOW_CURSOR)
        self.stream.write(_CLEAR_SCREEN)
        self.stream.flush()

    def goto(self, row: int, col: int) -> None:
        """Move the cursor to a zero-based (row, col) position."""
        self.stream.write(f"\033[{row + 1};{col + 1}H")

    def draw(self, frame: str) -> None:
        """Write a full frame starting at the top-left corner."""
        self.goto(0, 0)
        for line in frame.split("\n"):
            self.stream.write(line + "\n")
        self.stream.flush()


class Torus:
    """
    A torus point cloud together with its projection and luminance buffers.

    The cloud is an (N, 3) array whose rows are overwritten in place on every rotation. Both buffers
    have the shape of the screen, (height, width); the projection buffer holds the closeness `|1/z|`
    of the point currently owning each pixel and the luminance buffer holds that point's raw
    luminance.

    Attributes:
        points (np.ndarray): Point cloud, one (x, y, z) row per point.
        projection (np.ndarray): Closeness of the nearest point per pixel, this frame.
        luminance (np.ndarray): Luminance of the nearest point per pixel.
        width (int): Screen columns.
        height (int): Screen rows.
        viewer_distance (float): Offset added to z before the perspective divide.
    """

    def __init__(
        self,
        points: np.ndarray,
        width: int = SCREEN_WIDTH,
        height: int = SCREEN_HEIGHT,
        viewer_distance: float = VIEWER_DISTANCE,
    ) -> None:
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        self.width = width
        self.height = height
        self.viewer_distance = viewer_distance
        self.projection = np.zeros((height, width))
        self.luminance = np.zeros((height, width))

    @classmethod
    def create(
        cls,
        major_radius: float = MAJOR_RADIUS,
        minor_radius: float = MINOR_RADIUS,
        **kwargs,
    ) -> "Torus":
        """
        Sample the torus surface by a double angular sweep.

        Points are emitted outer-angle-major: for each φ (around the hole, step `OUTER_STEP`) every
        θ (around the tube, step `INNER_STEP`).

        Args:
            major_radius (float): Distance R from the torus center to the tube center.
            minor_radius (float): Radius r of the tube.
            **kwargs: Forwarded to the constructor (screen size, viewer distance).

        Returns:
            Torus: A torus with zeroed buffers.
        """
        points = []
        φ = 0.0
        while φ < 2*π:
            cosφ, sinφ = cos(φ), sin(φ)
            ϑ = 0.0
            while ϑ < 2*π:
                ring = major_radius + minor_radius * cos(ϑ)
                points.append((ring * cosφ, minor_radius * sin(ϑ), -ring * sinφ))
                ϑ += INNER_STEP
            φ += OUTER_STEP

        torus = cls(np.array(points, dtype=np.float64), **kwargs)
        logger.info("Generated %d torus points (R=%s, r=%s)", len(torus), major_radius, minor_radius)
        return torus

    def __len__(self) -> int:
        """Number of points in the cloud."""
        return len(self.points)

    def __str__(self) -> str:
        """
        List every point as `(x , y , z)` with two decimals, one per line, inside brackets.
        """
        lines = ["["]
        for count, (x, y, z) in enumerate(self.points):
            prefix = " " if count else ""
            lines.append(f"{prefix}({x:.2f} , {y:.2f} , {z:.2f})")
        lines.append("]")
        return "\n".join(lines) + "\n"

    def rotate(self, a: float, b: float) -> None:
        """
        Rotate every point in place: first `(y, z)` by angle a, then `(x, y)` by angle b.

        Args:
            a (float): Angle mixing y and z (radians).
            b (float): Angle mixing x and the a-rotated y (radians).
        """
        cos_a, sin_a = cos(a), sin(a)
        cos_b, sin_b = cos(b), sin(b)

        x, y, z = self.points[:, 0], self.points[:, 1], self.points[:, 2]
        tilted_y = y * cos_a - z * sin_a

        result_x = x * cos_b - sin_b * tilted_y
        result_y = x * sin_b + cos_b * tilted_y
        result_z = y * sin_a + z * cos_a

        self.points[:, 0] = result_x
        self.points[:, 1] = result_y
        self.points[:, 2] = result_z

    def clear_projection(self) -> None:
        """Reset every closeness cell to 0.0; the luminance buffer is left as is."""
        self.projection.fill(0.0)

    def project(self) -> float:
        """
        Project the cloud into the buffers and resolve visibility per pixel.

        Points are visited in cloud order. A point wins a pixel only if its closeness is strictly
        greater than the current owner's, so the first of several equally close points keeps it.
        Points on the viewer plane (`z + viewer_distance == 0`), points with `z == 0` and points
        falling off-screen are skipped.

        Returns:
            float: The largest luminance of any winning point this frame, never below 0.0.
        """
        self.clear_projection()

        x, y, z = self.points[:, 0], self.points[:, 1], self.points[:, 2]
        depth = z + self.viewer_distance

        with np.errstate(divide="ignore", invalid="ignore"):
            cols = np.floor(self.width * x / depth + self.width / 2)
            rows = np.floor(self.height * y / depth + self.height / 2)
            closeness = np.abs(1.0 / z)
            visible = (
                (depth != 0.0) & (z != 0.0)
                & (cols >= 0) & (cols < self.width)
                & (rows >= 0) & (rows < self.height)
            )
        lum = -100.0 * y + 4.0 * z

        max_luminance = 0.0
        for row, col, near, value in zip(
            rows[visible].astype(int).tolist(),
            cols[visible].astype(int).tolist(),
            closeness[visible].tolist(),
            lum[visible].tolist(),
        ):
            if near > self.projection[row, col]:
                self.projection[row, col] = near
                self.luminance[row, col] = value
                if value > max_luminance:
                    max_luminance = value
        return max_luminance

    def render_frame(self, max_luminance: float) -> str:
        """
        Turn the buffers into `height` lines of `width` characters.

        Args:
            max_luminance (float): Normalization factor, as returned by `project`.

        Returns:
            str: Newline-joined rows. When `max_luminance` is not positive every owned pixel is
            drawn with the darkest glyph; a frame with no owned pixel is all blank.
        """
        scale = 1.0 / max_luminance if max_luminance > 0.0 else 0.0

        lines = []
        for r in range(self.height):
            chars = []
            for c in range(self.width):
                if self.projection[r, c] != 0.0:
                    chars.append(glyph_for(self.luminance[r, c] * scale))
                else:
                    chars.append(EMPTY_GLYPH)
            lines.append("".join(chars))
        return "\n".join(lines)

    def display(self, terminal: TerminalSession) -> str:
        """Project, shade and draw one frame; returns the drawn frame."""
        frame = self.render_frame(self.project())
        terminal.draw(frame)
        return frame


def animate(
    torus: Torus,
    terminal: TerminalSession,
    frame_delay: float = FRAME_DELAY,
    resteer_interval: int = RESTEER_INTERVAL,
    spin_limit: float = SPIN_LIMIT,
    rng: Optional[random.Random] = None,
    sleep: Optional[Callable[[float], None]] = None,
    stop_event: Optional[threading.Event] = None,
    max_frames: Optional[int] = None,
) -> int:
    """
    Rotate and draw the torus until stopped.

    Every `resteer_interval` frames a new pair of spin angles is drawn uniformly from
    `[-spin_limit, spin_limit]`.

    Args:
        torus: The torus to animate.
        terminal: An entered `TerminalSession`.
        frame_delay: Time to sleep between frames (in seconds).
        resteer_interval: Frames between spin angle changes.
        spin_limit: Bound of the uniform spin angle range (radians).
        rng: Source of spin angles; a fresh `random.Random` when omitted.
        sleep: Blocking delay function; `time.sleep` when omitted.
        stop_event: Checked once per frame; the loop ends when it is set.
        max_frames: Optional upper bound on rendered frames.

    Returns:
        int: Number of frames drawn.
    """
    rng = rng if rng is not None else random.Random()
    sleep = sleep if sleep is not None else time.sleep
    angle_1 = rng.uniform(-spin_limit, spin_limit)
    angle_2 = rng.uniform(-spin_limit, spin_limit)
    logger.debug("Animation started with spin (%.3f, %.3f)", angle_1, angle_2)

    frames = 0
    counter = 0
    try:
        while stop_event is None or not stop_event.is_set():
            if max_frames is not None and frames >= max_frames:
                break
            torus.rotate(angle_1, angle_2)
            torus.display(terminal)
            frames += 1
            sleep(frame_delay)
            counter += 1
            if counter == resteer_interval:
                angle_1 = rng.uniform(-spin_limit, spin_limit)
                angle_2 = rng.uniform(-spin_limit, spin_limit)
                counter = 0
                logger.debug("Spin changed to (%.3f, %.3f)", angle_1, angle_2)
    except KeyboardInterrupt:
        # Graceful exit on Ctrl-C
        logger.debug("Interrupted by user")

    logger.debug("Animation stopped after %d frames", frames)
    return frames


def main() -> int:
    """
    Run the animation until SIGTERM or Ctrl-C.

    Returns:
        int: Process exit status, 1 when the terminal cannot be prepared.
    """
    setup_logging()

    torus = Torus.create(MAJOR_RADIUS, MINOR_RADIUS)
    torus.rotate(*INITIAL_TILT)

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())

    try:
        with TerminalSession() as terminal:
            frames = animate(torus, terminal, stop_event=stop_event)
    except TerminalSetupError as err:
        logger.error("Terminal setup failed: %s", err)
        return 1

    logger.info("Animation stopped after %d frames", frames)
    return 0


if __name__ == '__main__':
    sys.exit(main())
