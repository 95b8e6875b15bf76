"""Wire keys and filesystem names shared by the host modules."""
from __future__ import annotations

# Inbound command keys
EDITOR_CONFIG_GET = "editor-config-get"
LOCAL_FILE_VIEW = "local-file-view"
TMP_FILE_CREATE = "temp-file-create"
TMP_FILE_GET = "temp-file-get"
TMP_FILES_PB_REMOVE = "temp-files-pb-remove"

# Outbound message keys
HOST_STATUS = "host-status"
EDITOR_CONFIG_RES = "editor-config-res"
FILE_DATA = "file-data"
SYNC_TEXT = "sync-text"

STATUS_READY = "ready"
STATUS_EXIT = "exit"

# Temp directory layout: <tmp_dir>/<LABEL>/<pid>/{TMP_FILES,TMP_FILES_PB}
LABEL = "exeditorhost"
TMP_FILES = "tmpfiles"
TMP_FILES_PB = "tmpfiles_pb"

MAX_MESSAGE_SIZE = 1024 * 1024

EXIT_OK = 0
EXIT_FAILURE = 1
