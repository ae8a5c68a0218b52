"""Actionable error catalog for tagdeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "clone_failed": {
        "what": "Could not clone {repository} into {path}.",
        "next": "Check repository access for `git` or authenticate the `gh` CLI.",
    },
    "tag_not_found": {
        "what": "Release tag {tag} does not exist in {path}.",
        "next": "Make sure the tag is pushed to the remote before publishing the release.",
    },
    "checkout_failed": {
        "what": "Could not check out {tag} in {path}.",
        "next": "Inspect the working tree for uncommitted changes that block the checkout.",
    },
    "health_timeout": {
        "what": "Containers did not become healthy within {seconds}s.",
        "next": "Inspect `docker compose logs` for the failing service.",
    },
    "rollback_failed": {
        "what": "Rollback of {repository} failed after: {error}",
        "next": "Restore the working tree and containers manually before the next release.",
    },
    "projects_file_invalid": {
        "what": "Could not read projects file '{path}'.",
        "next": "Check that the file exists and maps repository names to deployment settings.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
