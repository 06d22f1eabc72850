"""Strategy registry with decorator-based registration.

Strategies are tried in registration order, so the modules imported by
``_ensure_methods_loaded`` define the fallback chain.
"""

from __future__ import annotations

from typing import Type

from egami.methods.base import PixelStrategy, VolumeDecoder

_pixel_registry: dict[str, Type[PixelStrategy]] = {}
_decoder_registry: dict[str, Type[VolumeDecoder]] = {}


def register_pixel_strategy(name: str):
    """Decorator to register a pixel extraction strategy."""

    def decorator(cls: Type[PixelStrategy]):
        cls.name = name
        _pixel_registry[name] = cls
        return cls

    return decorator


def register_decoder(name: str):
    """Decorator to register a volume decoder."""

    def decorator(cls: Type[VolumeDecoder]):
        cls.name = name
        _decoder_registry[name] = cls
        return cls

    return decorator


def pixel_strategies(names: list[str] | None = None) -> list[PixelStrategy]:
    """Instantiate pixel strategies in fallback order (optionally a named subset)."""
    _ensure_methods_loaded()
    return [cls() for cls in _select(_pixel_registry, names)]


def volume_decoders(names: list[str] | None = None) -> list[VolumeDecoder]:
    """Instantiate volume decoders in fallback order (optionally a named subset)."""
    _ensure_methods_loaded()
    return [cls() for cls in _select(_decoder_registry, names)]


def _select(registry: dict, names: list[str] | None) -> list:
    if names is None:
        return [cls for cls in registry.values() if cls.check_dependencies()[0]]
    unknown = [n for n in names if n not in registry]
    if unknown:
        available = ", ".join(registry.keys())
        raise ValueError(f"Unknown strategy '{unknown[0]}'. Available: {available}")
    return [registry[n] for n in names]


def list_methods() -> list[dict[str, str]]:
    """List all registered strategies with their info."""
    _ensure_methods_loaded()
    methods = []
    for kind, registry in (("pixel", _pixel_registry), ("decoder", _decoder_registry)):
        for name, cls in registry.items():
            available, msg = cls.check_dependencies()
            methods.append(
                {
                    "kind": kind,
                    "name": name,
                    "description": cls.description,
                    "available": available,
                    "dependency_message": msg,
                }
            )
    return methods


def _ensure_methods_loaded():
    """Import strategy modules to trigger registration."""
    import egami.methods.pixel_strategies  # noqa: F401
    import egami.methods.nifti_decoders  # noqa: F401
