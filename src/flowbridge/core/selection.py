# src/flowbridge/core/selection.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace

from ..tasks.task_models import Label, LabelColor, Task


@dataclass(slots=True, frozen=True)
class LabelSelection:
    """
    Labels picked in one flow (new task, edit task).

    Each flow owns its own value and passes it to the controller; there is no
    shared selection state between flows. Names keep the order they were picked in.
    """

    names: tuple[str, ...] = ()
    new_label_color: LabelColor = LabelColor.GRAY

    @classmethod
    def from_task(cls, task: Task) -> LabelSelection:
        return cls(names=tuple(task.label_names))

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def toggled(self, name: str) -> LabelSelection:
        name = name.strip()
        if not name:
            return self
        if name in self.names:
            return replace(self, names=tuple(n for n in self.names if n != name))
        return replace(self, names=(*self.names, name))

    def with_color(self, color: LabelColor | str) -> LabelSelection:
        return replace(self, new_label_color=LabelColor.from_wire(str(color)))

    def cleared(self) -> LabelSelection:
        return replace(self, names=())

    def resolve(self, known: Iterable[Label]) -> list[Label]:
        """
        Turn picked names into labels.

        Known names keep their registered color; unknown names become new labels
        in new_label_color.
        """
        by_name = {lbl.name: lbl for lbl in known}
        return [by_name.get(name) or Label(name=name, color=self.new_label_color) for name in self.names]
