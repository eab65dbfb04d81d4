import os
import logging
import posixpath
from pathlib import Path
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

from crowdin_client import CrowdinClient, CrowdinError, CrowdinLookupError, Directory, File

log = logging.getLogger("upload-to-crowdin")


def normalize_path(path: str) -> str:
    """'/a//b/' -> 'a/b'"""
    return "/".join(part for part in path.split("/") if part)


def get_directory_id(client: CrowdinClient, project_id: int, branch_id: int, path: str) -> Optional[int]:
    """Find an existing directory inside a branch. Nothing is created here."""
    path = normalize_path(path)
    if not path:
        return None
    for d in client.get_directories(project_id, branch_id):
        if d.path == path:
            return d.id
    raise CrowdinLookupError("Directory", path)


def find_base_directory(dirs: List[Directory], path: str) -> Optional[Directory]:
    """Deepest existing directory whose path is ``path`` or one of its ancestors."""
    by_path: Dict[str, Directory] = {d.path: d for d in dirs}
    path_it = path
    while path_it:
        if path_it in by_path:
            return by_path[path_it]
        path_it = posixpath.dirname(path_it)
    return None


def create_missing_directories(
    client: CrowdinClient, project_id: int, base_dir: Optional[Directory], path: str
) -> Optional[Directory]:
    current = base_dir
    while (current.path if current else "") != path:
        missing = path[len(current.path) + 1:] if current else path
        name = missing.split("/")[0]
        current = client.add_directory(project_id, current, name)
        log.info(f"Created directory {current.path}")
    return current


def get_or_add_path(client: CrowdinClient, project_id: int, path: str) -> Optional[int]:
    """Resolve ``path`` outside any branch, creating whatever is missing.

    Returns None for the project root.
    """
    path = normalize_path(path)
    dirs = client.get_directories(project_id)
    base_dir = find_base_directory(dirs, path)
    target = create_missing_directories(client, project_id, base_dir, path)
    return target.id if target else None


def add_or_update_file(
    client: CrowdinClient,
    project_id: int,
    directory_id: Optional[int],
    storage_id: int,
    name: str,
    export_pattern: Optional[str] = None,
    branch_id: Optional[int] = None,
) -> File:
    basename = posixpath.basename(name)
    existing = next(
        (f for f in client.get_files(project_id, branch_id)
         if f.directory_id == directory_id and f.name == basename),
        None,
    )

    if existing:
        result = client.update_file(project_id, existing.id, storage_id)
        log.info(f"Updated file {basename} ({existing.id})")
    else:
        result = client.add_file(project_id, directory_id, storage_id, name, export_pattern, branch_id=branch_id)
        log.info(f"Added file {basename} ({result.id})")
    return result


def upload_file(
    client: CrowdinClient,
    project_name: str,
    source_filename: str,
    target_path: str,
    branch_name: Optional[str] = None,
    export_pattern: Optional[str] = None,
) -> File:
    """Push ``source_filename`` into ``target_path`` of the project.

    Without a branch, missing directories are created. With a branch, the
    directory must already exist. Earlier steps are not undone on failure.
    """
    storage_id = client.add_storage(source_filename)
    log.info(f"Storage ID ({source_filename}): {storage_id}")

    project_id = client.get_project_id(project_name)
    log.info(f"Project ID ({project_name}): {project_id}")

    branch_id = None
    if branch_name:
        branch_id = client.get_branch_id(project_id, branch_name)
        log.info(f"Branch ID ({branch_name}): {branch_id}")
        directory_id = get_directory_id(client, project_id, branch_id, target_path)
    else:
        if export_pattern:
            log.warning("Export pattern is only applied to branch uploads, ignoring it")
            export_pattern = None
        directory_id = get_or_add_path(client, project_id, target_path)
    log.info(f"Directory ID ({target_path}): {directory_id}")

    return add_or_update_file(
        client, project_id, directory_id, storage_id, source_filename,
        export_pattern=export_pattern, branch_id=branch_id,
    )


def upload_file_branch(
    client: CrowdinClient,
    project_name: str,
    branch_name: str,
    source_filename: str,
    target_path: str,
    export_pattern: Optional[str],
) -> File:
    return upload_file(client, project_name, source_filename, target_path, branch_name, export_pattern)


def main():
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    project = os.environ.get("CROWDIN_PROJECT", "").strip()
    source = os.environ.get("SOURCE_FILE", "").strip()
    target = os.environ.get("TARGET_PATH", "").strip()
    branch = os.environ.get("CROWDIN_BRANCH", "").strip() or None
    export_pattern = os.environ.get("EXPORT_PATTERN", "").strip() or None

    if not project or not source:
        raise SystemExit(
            "Set env vars: CROWDIN_PROJECT, SOURCE_FILE. "
            "Optional: TARGET_PATH (empty = root), CROWDIN_BRANCH, EXPORT_PATTERN, CROWDIN_API_URL"
        )
    if not Path(source).is_file():
        raise SystemExit(f"SOURCE_FILE not found: {source}")

    try:
        client = CrowdinClient.from_env()
        upload_file(client, project, source, target, branch_name=branch, export_pattern=export_pattern)
    except CrowdinError as e:
        log.error(str(e))
        raise SystemExit(1)
    except requests.RequestException as e:
        log.error(f"Network error: {e}")
        raise SystemExit(1)
    except OSError as e:
        log.error(f"Cannot read source file: {e}")
        raise SystemExit(1)

    log.info("Done.")


if __name__ == "__main__":
    main()
