from typing import Any, Callable, Dict, Type, TypeVar

T = TypeVar("T")

# Maps entity classes to the repository that manages them
repository_registry: Dict[Type[Any], Type[Any]] = {}


def repository(model_class: Type[Any]) -> Callable[[Type[T]], Type[T]]:
    def decorator(repo_class: Type[T]) -> Type[T]:
        repository_registry[model_class] = repo_class
        setattr(repo_class, "model", model_class)
        return repo_class

    return decorator
