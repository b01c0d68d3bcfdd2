from swarm_api.config.settings import settings

__all__ = ["settings"]
