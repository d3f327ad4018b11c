# pass_builder/services/__init__.py

from .build_service import BuildService, build_pass

__all__ = ['BuildService', 'build_pass']
