"""Hydra ConfigStore registration utilities."""

from __future__ import annotations

from typing import Any

from hydra.core.config_store import ConfigStore
from loguru import logger


def register(
    cls: type[Any] | None = None,
    *,
    group: str | None = None,
    name: str | None = None,
    **defaults: Any,
) -> type[Any] | Any:
    """Register a class as a Hydra config node with ``_target_`` set to it.

    Stack the decorator to publish several named presets of one class, e.g.
    one node per torchvision architecture in the ``backbone`` group::

        @register(group="backbone", name="resnet50", arch="resnet50")
        @register(group="backbone", name="resnet18", arch="resnet18")
        class TorchvisionFeatureExtractor: ...

    Arguments:
        cls: The class to register.
        group: ConfigStore group. Inferred from the parent package when ``None``
            (``transfer_classifier.models.backbone`` → ``models``).
        name: Config name. Defaults to the class name.
        **defaults: Default constructor arguments stored in the node.
    """

    def _process_class(target_cls: type[Any]) -> type[Any]:
        config_group = group or target_cls.__module__.split(".")[-2]
        config_name = name or target_cls.__name__
        node: dict[str, Any] = {
            "_target_": f"{target_cls.__module__}.{target_cls.__name__}",
            **defaults,
        }
        logger.debug(
            f"Registering {target_cls.__name__} as '{config_name}' "
            f"in group '{config_group}'"
        )
        ConfigStore.instance().store(group=config_group, name=config_name, node=node)
        return target_cls

    if cls is None:
        return _process_class
    return _process_class(cls)
