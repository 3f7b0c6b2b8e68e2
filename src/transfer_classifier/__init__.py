"""Transfer-learning image classifier on top of a frozen torchvision backbone."""

__version__ = "0.0.1"
