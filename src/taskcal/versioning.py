from importlib.metadata import version, PackageNotFoundError


def get_version() -> str:
    """Return the installed taskcal version, or 0.0.0 when running from a checkout."""
    try:
        return version("taskcal")
    except PackageNotFoundError:
        return "0.0.0"
