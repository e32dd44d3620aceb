# Agents Module
# The three agents that carry out document operations

from .document_agent import DocumentEditingAgent
from .sharing_agent import SharingAgent
from .version_agent import VersionControlAgent

__all__ = ['DocumentEditingAgent', 'SharingAgent', 'VersionControlAgent']
