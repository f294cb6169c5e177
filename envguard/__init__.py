"""EnvGuard — local environment-variable and secrets store monitor."""

__version__ = "0.1.0"
