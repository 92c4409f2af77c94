"""Base class for timed processing stages."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..errors import PipeParamsError

logger = logging.getLogger(__name__)

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741
P = TypeVar("P")


@dataclass
class CVPipeResult(Generic[O]):
    """Output of one pipe invocation and how long it took."""

    output: O
    nanos_elapsed: int


class CVPipe(ABC, Generic[I, O, P]):
    """A single named processing stage.

    Parameters are immutable value objects replaced wholesale through
    :meth:`set_params`. Subclasses validate in :meth:`check_params` and do
    their work in :meth:`process`; :meth:`run` adds timing.
    """

    def __init__(self, name: str | None = None):
        self.name = name or type(self).__name__
        self.params: P | None = None

    def set_params(self, params: P) -> None:
        """Replace this pipe's parameters.

        Raises:
            PipeParamsError: If ``params`` is invalid. The previous
                parameters remain in effect.
        """
        self.check_params(params)
        self.params = params

    def check_params(self, params: P) -> None:
        """Validate a parameter object before it is applied.

        Raises:
            PipeParamsError: If ``params`` is invalid.
        """

    def fail(self, message: str) -> PipeParamsError:
        return PipeParamsError(self.name, message)

    @abstractmethod
    def process(self, in_: I) -> O:
        """Transform one input. Library faults propagate to the caller."""

    def run(self, in_: I) -> CVPipeResult[O]:
        """Process one input and measure the elapsed wall time."""
        if self.params is None:
            raise RuntimeError(f"{self.name}: run() called before set_params()")
        start = time.perf_counter_ns()
        output = self.process(in_)
        return CVPipeResult(output, time.perf_counter_ns() - start)


class Releasable(ABC):
    """Pipes that hold reusable buffers or native handles."""

    @abstractmethod
    def release(self) -> None:
        """Drop every buffer or handle owned by this object."""
