"""Registers the agent with the OS service manager."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .descriptors import ServiceDescriptor
from .errors import BestEffortFailure, OnboardError
from .platforms import Platform

logger = logging.getLogger("lattice-onboard")


@dataclass
class ServiceResult:
    """Result of enabling the agent service."""
    success: bool
    error: Optional[str] = None


class ServiceLifecycleManager:
    """Enables and disables the agent service on one platform."""

    def __init__(self, platform: Platform):
        self.platform = platform

    def enable(self, descriptor: ServiceDescriptor) -> ServiceResult:
        """Write the service definition, then register and start it.

        Returns:
            ServiceResult; errors are reported, not raised
        """
        logger.info(f"Enabling {descriptor.name} service on {self.platform.name}")
        try:
            self.platform.enable_service(descriptor)
        except OnboardError as e:
            logger.error(f"Failed to enable service {descriptor.name}: {e}")
            return ServiceResult(success=False, error=str(e))

        logger.info(f"Service {descriptor.name} enabled")
        return ServiceResult(success=True)

    def disable(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        """Stop and unregister the service, then delete its definition.

        Every sub-step is attempted even if an earlier one fails.

        Returns:
            Failures of individual sub-steps (empty if everything went fine)
        """
        try:
            failures = self.platform.disable_service(descriptor)
        except Exception as e:
            logger.warning(f"Disabling service {descriptor.name} failed: {e}")
            failures = [BestEffortFailure("disable_service", str(e))]

        if failures:
            logger.warning(f"Service {descriptor.name} disabled with {len(failures)} ignored failure(s)")
        return failures

    def is_registered(self, descriptor: ServiceDescriptor) -> bool:
        """True if a service definition for the agent exists on disk."""
        path = self.platform.service_file(descriptor)
        return path is not None and path.exists()
