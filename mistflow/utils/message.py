import sys
import time
from functools import wraps

_enable_output = True

original_stdout = sys.stdout


def enter_quiet():
    global _enable_output
    _enable_output = False


def exit_quiet():
    global _enable_output
    _enable_output = True


def log(*args, **kwargs):
    if not _enable_output:
        return
    # [hh:mm:ss] prefix on every line
    timestamp = time.strftime("[%H:%M:%S]", time.localtime())
    print(timestamp, *args, **kwargs, file=original_stdout)


def log_time(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        duration = time.time() - start_time
        log(f"function {func.__name__} took {duration:.6f} seconds to execute")
        return result
    return wrapper


def log_table(title: str, rows: dict, unit: str = "ms", scale: float = 1e3):
    """Log a ``name: value`` table, e.g. per-stage timings."""
    log(title)
    width = max((len(k) for k in rows), default=0)
    for name, value in rows.items():
        log(f"  {name:<{width}}  {value * scale:8.3f} {unit}")
