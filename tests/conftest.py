import pytest


WORK_ITEMS = [
    {"id": 34, "fields": {"System.WorkItemType": "Bug", "System.Title": "Bug number 1"}},
    {"id": 35, "fields": {"System.WorkItemType": "Bug", "System.Title": "Bug number 2"}},
    {"id": 2, "fields": {"System.WorkItemType": "Backlog Item", "System.Title": "Backlog item one"}},
]

BUILD_DETAILS = {"id": 345, "buildNumber": "20200101.1", "sourceBranch": "refs/heads/main"}


class BranchRecorder:
    """Stands in for the pybars block options and records each continuation call."""

    def __init__(self):
        self.calls = []

    def _continuation(self, branch):
        def render(receiver):
            self.calls.append((branch, receiver))
            return f"<{branch}:{receiver!r}>"
        return render

    @property
    def options(self):
        return {"fn": self._continuation("fn"), "inverse": self._continuation("inverse"), "root": None}

    def branches(self):
        return [branch for branch, _ in self.calls]


@pytest.fixture
def work_items():
    return [dict(item, fields=dict(item["fields"])) for item in WORK_ITEMS]


@pytest.fixture
def build_details():
    return dict(BUILD_DETAILS)


@pytest.fixture
def recorder():
    return BranchRecorder()
