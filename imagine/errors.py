"""Failures raised by a single generation attempt."""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Base class for attempt-level failures that feed the retry decision."""

    retryable = True


class NavigationTimeout(GenerationError):
    """The target page did not load in time."""


class SelectorTimeout(GenerationError):
    """An expected UI element never appeared, usually after an upstream UI change."""


class ExtractionFailure(GenerationError):
    """No qualifying result image was found after waiting."""


class TransportFailure(GenerationError):
    """Link validation rejected every extracted image URL."""
