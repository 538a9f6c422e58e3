"""Image reference parsing."""


def parse_repository_tag(repo_tag: str) -> tuple[str, str]:
    """Split an image reference into repository and tag (or digest).

    Args:
        repo_tag: Reference such as "nginx:alpine",
            "localhost:5000/myapp:latest" or "myapp@sha256:abc..."

    Returns:
        tuple[str, str]: (repository, reference); the reference defaults to
        "latest" when none is given

    Examples:
        >>> parse_repository_tag("localhost:5000/myapp:latest")
        ('localhost:5000/myapp', 'latest')
        >>> parse_repository_tag("myapp")
        ('myapp', 'latest')
    """
    if "@" in repo_tag:
        repository, digest = repo_tag.split("@", 1)
        return repository, digest

    # Only a colon after the last slash separates a tag; earlier ones belong
    # to a registry host:port
    name_start = repo_tag.rfind("/") + 1
    colon = repo_tag.rfind(":")
    if colon >= name_start:
        repository, tag = repo_tag[:colon], repo_tag[colon + 1 :]
        return repository, tag or "latest"

    return repo_tag, "latest"
