from fastapi import Request

from ....workers.monitor_supervisor import MonitorSupervisor


def get_supervisor(request: Request) -> MonitorSupervisor:
    """
    Resolve the running supervisor from FastAPI app state.
    """
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        raise RuntimeError("Supervisor is not initialized in app.state.supervisor")
    return supervisor
