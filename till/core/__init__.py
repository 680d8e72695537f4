from .models import (
    ConflictChoice, PlatformCapabilities, PortConflict, PortProcessInfo,
    ScheduleConfig, SchedulerType,
)
from .port_probe import PortProbe
from .process_controller import ProcessController
from .port_allocator import PortRangeAllocator, ConsoleResolver
from .scheduler import SchedulerAdapter, detect

__all__ = [
    'ConflictChoice', 'PlatformCapabilities', 'PortConflict', 'PortProcessInfo',
    'ScheduleConfig', 'SchedulerType',
    'PortProbe', 'ProcessController', 'PortRangeAllocator', 'ConsoleResolver',
    'SchedulerAdapter', 'detect',
]
