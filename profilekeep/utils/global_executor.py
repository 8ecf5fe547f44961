# Copyright (C) 2021 The Profilekeep Contributors
#
# This file is part of Profilekeep.
#
# Profilekeep is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Profilekeep is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with Profilekeep.  If not, see <http://www.gnu.org/licenses/>.
"""The thread pool shared by CPU-bound helpers (see `profilekeep.utils.asec`).

Nothing but worker threads lives here: services are never process-wide, `profilekeep.ProfileKeep` builds and owns them.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

_global_thread_pool_executor: Optional[ThreadPoolExecutor] = None


def get() -> ThreadPoolExecutor:
    """Return the shared thread pool executor, create it if it does not exists."""
    global _global_thread_pool_executor
    if not _global_thread_pool_executor:
        _global_thread_pool_executor = ThreadPoolExecutor(
            None, "profilekeep.utils.global_thread_pool_executor"
        )
    return _global_thread_pool_executor


def shutdown(wait: bool = True) -> None:
    """Shut the shared executor down. `get` creates a new one on the next call."""
    global _global_thread_pool_executor
    if _global_thread_pool_executor:
        _global_thread_pool_executor.shutdown(wait=wait)
        _global_thread_pool_executor = None
