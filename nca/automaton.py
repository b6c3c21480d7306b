"""
Cellular automaton driver.

Couples a Grid with a CellNetwork. The discrete update computes every
cell's next state from the current grid before writing any of them back.
The tensor update does the same arithmetic on a dense [H, W, 1+K] tensor
and keeps the autograd graph, so it can be chained for backpropagation
through time.
"""

import time
from typing import Callable, List, Optional

import torch

from .errors import ConfigurationError, NotInitializedError
from .grid import Grid
from .model import CellNetwork
from .utils import gather_neighborhoods, check_finite


class RunLoop:
    """
    Step-by-step driver for repeated discrete updates.

    The owner decides when run_step() is called; CellularAutomaton.start()
    is one such owner that sleeps between steps. Any error raised by a
    step stops the loop and is re-raised.
    """

    def __init__(self, automaton: 'CellularAutomaton', max_steps: Optional[int] = None,
                 continuous: bool = False, on_step: Callable = None, on_complete: Callable = None):
        self.automaton = automaton
        self.max_steps = max_steps
        self.continuous = continuous
        self.on_step = on_step
        self.on_complete = on_complete
        self.current_step = 0
        self._running = True

    @property
    def is_running(self) -> bool:
        return self._running

    def run_step(self) -> bool:
        """Perform one update. Returns whether the loop is still running."""
        if not self._running:
            return False

        try:
            self.automaton.update()
            self.current_step += 1

            if self.on_step is not None:
                self.on_step(self.current_step)

            limit_reached = (not self.continuous and self.max_steps is not None
                             and self.current_step >= self.max_steps)
            if limit_reached and self._running:
                on_complete = self.on_complete
                self.stop()
                if on_complete is not None:
                    on_complete()
        except Exception:
            # Callback errors end the run just like step errors
            self.stop()
            raise
        return self._running

    def stop(self):
        # Completion is only reported when the step limit is reached
        self._running = False
        self.on_complete = None


class CellularAutomaton:

    def __init__(self, grid: Grid, network: CellNetwork, update_interval: float = 0.1):
        if grid is None or network is None:
            raise ConfigurationError("CellularAutomaton requires both grid and network")
        if grid.state_size != network.state_size:
            raise ConfigurationError(
                f"Grid carries {grid.state_size} state floats but the network "
                f"expects {network.state_size}"
            )

        self.grid = grid
        self.network = network
        self.update_interval = max(0.0, update_interval)
        self._loop: Optional[RunLoop] = None

    # ------------------------------------------------------------------
    # Discrete update
    # ------------------------------------------------------------------

    def update(self, parameters=None):
        """
        One synchronous step of the whole grid.

        All neighbourhoods are read from the current grid, evaluated in one
        batch and only then written back. `parameters` evaluates a candidate
        weight set instead of the network's own.
        """
        if not self.network.is_initialized:
            raise NotInitializedError("Network not initialized. Call network.initialize() first.")

        grid = self.grid
        inputs = grid.neighbor_inputs(self.network.device)
        on, states = self.network.predict_batch(inputs, parameters)
        grid.commit(on.reshape(grid.height, grid.width),
                    states.reshape(grid.height, grid.width, grid.state_size))

    def run(self, steps: int, parameters=None):
        for _ in range(steps):
            self.update(parameters)

    # ------------------------------------------------------------------
    # Differentiable update
    # ------------------------------------------------------------------

    def step_tensor(self, x: torch.Tensor, parameters=None) -> torch.Tensor:
        """
        Differentiable step on a [H, W, 1+K] tensor.

        Padding follows the grid's boundary policy. The result feeds the
        next call directly; nothing is detached.
        """
        if not self.network.is_initialized:
            raise NotInitializedError("Network not initialized. Call network.initialize() first.")

        expected = (self.grid.height, self.grid.width, self.grid.channels)
        if tuple(x.shape) != expected:
            raise ConfigurationError(f"Expected grid tensor of shape {expected}, got {tuple(x.shape)}")

        h, w, c = x.shape
        inputs = gather_neighborhoods(x, self.grid.boundary)
        out = self.network.forward_tensor(inputs, parameters)
        check_finite(out.detach(), "differentiable step")
        return out.reshape(h, w, c)

    def rollout_tensor(self, x: torch.Tensor, steps: int, parameters=None) -> List[torch.Tensor]:
        """Chain `steps` tensor updates; returns every intermediate state."""
        states = []
        for _ in range(steps):
            x = self.step_tensor(x, parameters)
            states.append(x)
        return states

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._loop is not None and self._loop.is_running

    def set_update_interval(self, interval: float):
        self.update_interval = max(0.0, interval)

    def create_run_loop(self, max_steps: Optional[int] = None, continuous: bool = False,
                        on_step: Callable = None, on_complete: Callable = None) -> RunLoop:
        """Hand out a RunLoop whose timing is owned by the caller."""
        if self.is_running:
            self._loop.stop()
        self._loop = RunLoop(self, max_steps=max_steps, continuous=continuous,
                             on_step=on_step, on_complete=on_complete)
        return self._loop

    def start(self, interval: Optional[float] = None, max_steps: Optional[int] = None,
              continuous: bool = False, on_step: Callable = None, on_complete: Callable = None) -> int:
        """
        Run updates at a fixed cadence until stop(), the step limit, or an error.

        Blocks the caller. Returns the number of steps performed.
        """
        if interval is not None:
            self.set_update_interval(interval)

        # create_run_loop stops any loop left over from an earlier run
        loop = self.create_run_loop(max_steps, continuous, on_step, on_complete)
        try:
            while loop.is_running:
                started = time.perf_counter()
                if not loop.run_step():
                    break
                delay = self.update_interval - (time.perf_counter() - started)
                if delay > 0:
                    time.sleep(delay)
        finally:
            loop.stop()
        return loop.current_step

    def stop(self):
        if self._loop is not None:
            self._loop.stop()

    def reset(self):
        self.stop()
        self.grid.reset()

    def set_cell(self, x: int, y: int, on: bool, state=None):
        self.grid.set(x, y, on, state)

    def get_cell(self, x: int, y: int):
        return self.grid.get(x, y)
