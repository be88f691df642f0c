import pytest

from picklist.ingest import ingest_csv
from picklist.persistence import MemoryStore
from picklist.session import PicklistSession

SCOUTING_CSV = """Team Number,Auto EPA,Teleop EPA,EPA,Climb,Coral Teleop,Algae Net,Notes
254,10,20,30,0.7,12,3,fast
1678,8,25,33,0.2,15,1,steady
971,12,18,30,,9,6,defense
"""


@pytest.fixture
def scouting_csv():
    return SCOUTING_CSV


@pytest.fixture
def ingested():
    return ingest_csv(SCOUTING_CSV)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session(store):
    s = PicklistSession(store)
    s.upload_csv(SCOUTING_CSV)
    return s
