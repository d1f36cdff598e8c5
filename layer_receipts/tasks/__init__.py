from .contracts import DEFAULT_RETRY_POLICY, RetryPolicy, TaskEnvelope  # noqa: F401
from .queue import RedisTaskQueue, TaskScheduler  # noqa: F401
from .worker import TaskWorker, UnknownTaskTypeError  # noqa: F401
