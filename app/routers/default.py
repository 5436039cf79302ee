import json
import logging
from pathlib import Path

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)
router = APIRouter()

VERSION_FILE = Path(__file__).parent.parent.parent / "version.json"

# https://www.patorjk.com/software/taag/#p=display&f=Standard&t=Notify
LOGO = r"""
 _   _       _   _  __
| \ | | ___ | |_(_)/ _|_   _
|  \| |/ _ \| __| | |_| | | |
| |\  | (_) | |_| |  _| |_| |
|_| \_|\___/ \__|_|_|  \__, |
                       |___/
"""


@router.get("/")
def index() -> Response:
    content = LOGO

    try:
        with open(VERSION_FILE, "r") as file:
            data = json.load(file)
            content += "\nVersion: %s\nCommit: %s" % (data["version"], data["git_ref"])
    except BaseException as e:
        content += "\nNo version information found"
        logger.info(f"Version info could not be loaded: {e}")

    return Response(content)


@router.get("/version.json")
def version_json() -> Response:
    try:
        with open(VERSION_FILE, "r") as file:
            content = file.read()
    except BaseException as e:
        logger.info(f"Version info could not be loaded: {e}")
        return Response(status_code=404)

    return Response(content)
