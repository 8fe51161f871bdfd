"""
The Supervisor package.
Manages the lifecycle of the pymobiledevice3 helper processes.

This package contains the LocationService and its helper modules, which
together resolve the helper executable, keep the privileged tunnel daemon
available and run the single persistent location simulation process.
"""
from .service import LocationService
from .simulation import ActiveSimulation, SimulationProcessManager, SimulationState
from .tunnel import TunnelSupervisor

__all__ = ["LocationService", "ActiveSimulation", "SimulationProcessManager", "SimulationState", "TunnelSupervisor"]
