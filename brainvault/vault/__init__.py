from brainvault.vault.paths import BrainPaths

__all__ = ["BrainPaths"]
