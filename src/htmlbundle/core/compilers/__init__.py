from .esbuild_engine import EsbuildEngine

__all__ = ['EsbuildEngine']
