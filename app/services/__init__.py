from app.services.lifecycle import LifecycleController  # noqa: F401
from app.services.notifier import ChangeNotifier, notifier  # noqa: F401
from app.services.repository import ComparisonRepository  # noqa: F401
