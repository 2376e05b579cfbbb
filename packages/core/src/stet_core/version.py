import importlib.metadata

DISTRIBUTION = "stet"


def tool_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return "dev"
