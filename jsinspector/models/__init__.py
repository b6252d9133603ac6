# Models package — re-export the public models.
# Prefer importing from the specific submodule (e.g. jsinspector.models.records).

from jsinspector.models.records import (
    Reason as Reason,
    Record as Record,
    RecordStatus as RecordStatus,
)
from jsinspector.models.sessions import (
    ActiveSession as ActiveSession,
    Bucket as Bucket,
    BucketKeyParts as BucketKeyParts,
    PendingRequest as PendingRequest,
    TabPolicy as TabPolicy,
)
