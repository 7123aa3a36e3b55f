from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from edge_enrichment.exceptions import TransportError
from edge_enrichment.graph import StreetEdge, StreetGraph
from edge_enrichment.noise.edge_updater import (
    NoiseLevelEdgeUpdater,
    edge_near_noise_source,
    noise_level_area,
    valid_noise_sources,
)
from edge_enrichment.noise.models import NOISE_LEVEL_LIST, NoiseLevelObserved
from edge_enrichment.noise.ngsi_client import NgsiClient


def noise_entity(lon, lat, la_max, entity_id="noise-1", **extra):
    entity = {
        "id": entity_id,
        "type": "NoiseLevelObserved",
        "location": {"type": "geo:json", "value": {"type": "Point", "coordinates": [lon, lat]}},
        "dateObservedFrom": {"type": "DateTime", "value": "2024-01-01T00:00:00Z"},
        "dateObservedTo": {"type": "DateTime", "value": "2024-01-01T00:05:00Z"},
        "LAmax": {"type": "Number", "value": la_max},
    }
    entity.update(extra)
    return entity


def observed(lon, lat, la_max, **extra) -> NoiseLevelObserved:
    return NoiseLevelObserved.model_validate(noise_entity(lon, lat, la_max, **extra))


@pytest.fixture
def mock_session():
    """Creates a mock requests session."""
    return MagicMock(spec=requests.Session)


def test_model_parses_ngsi_entity_and_ignores_unknown_attributes():
    noise_level = observed(24.94, 60.17, 80.0, LAeq={"type": "Number", "value": 65.5}, sensor="x")

    assert noise_level.id == "noise-1"
    assert noise_level.coordinate == (24.94, 60.17)
    assert noise_level.measurement() == 80.0
    assert noise_level.measurement("LAeq") == 65.5
    assert noise_level.measurement("LAS") is None
    assert noise_level.date_observed_to.value == "2024-01-01T00:05:00Z"


def test_model_unknown_measurement_name():
    with pytest.raises(ValueError):
        observed(24.94, 60.17, 80.0).measurement("dB")


def test_model_without_location_has_no_coordinate():
    assert NoiseLevelObserved.model_validate({"id": "n"}).coordinate is None
    incomplete = NoiseLevelObserved.model_validate(
        {"location": {"value": {"type": "Point", "coordinates": [24.9]}}}
    )
    assert incomplete.coordinate is None


def test_noise_level_list_adapter():
    noise_levels = NOISE_LEVEL_LIST.validate_python(
        [noise_entity(24.9, 60.1, 70.0), noise_entity(24.8, 60.2, 60.0, entity_id="noise-2")]
    )
    assert [n.id for n in noise_levels] == ["noise-1", "noise-2"]


def test_valid_noise_sources_drops_incomplete_observations():
    noise_levels = [
        observed(24.9, 60.1, 70.0),
        NoiseLevelObserved.model_validate({"id": "no-location", "LAmax": {"value": 50.0}}),
        NoiseLevelObserved.model_validate(
            {"location": {"value": {"coordinates": [24.8, 60.2]}}, "LAmax": {"type": "Number"}}
        ),
        None,
    ]
    assert valid_noise_sources(noise_levels) == [((24.9, 60.1), 70.0)]


def test_noise_level_area():
    area = noise_level_area([((24.9, 60.2), 70.0), ((24.8, 60.1), 60.0)])
    assert area.bounds == (24.8, 60.1, 24.9, 60.2)
    assert noise_level_area([]) is None


def test_edge_near_noise_source_checks_both_endpoints():
    edge = StreetEdge(id=1, from_coord=(0.0, 0.0), to_coord=(1.0, 0.0))
    assert edge_near_noise_source((0.003, 0.003), edge, 0.005)
    assert edge_near_noise_source((1.0, 0.004), edge, 0.005)
    # Close to the middle of the edge but far from both ends
    assert not edge_near_noise_source((0.5, 0.0), edge, 0.005)
    # Strictly less than the threshold
    assert not edge_near_noise_source((0.0, 0.005), edge, 0.005)


def test_point_source_assignment():
    """An observation 0.001 degrees from an endpoint is assigned, one 0.01 away is not."""
    edge_a = StreetEdge(id="A", from_coord=(24.941, 60.17), to_coord=(24.95, 60.17))
    edge_b = StreetEdge(id="B", from_coord=(24.95, 60.17), to_coord=(24.96, 60.17))
    updater = NoiseLevelEdgeUpdater([observed(24.94, 60.17, 80.0)], threshold=0.005)

    assert updater.update_edges([edge_a, edge_b]) == 1
    assert edge_a.noise_level == 80.0
    assert edge_b.noise_level == 0.0


def test_loudest_nearby_source_wins():
    edge = StreetEdge(id=1, from_coord=(24.9005, 60.1005), to_coord=(24.9495, 60.1995))
    updater = NoiseLevelEdgeUpdater(
        [observed(24.95, 60.20, 70.0), observed(24.90, 60.10, 60.0), observed(24.90, 60.101, 65.0)]
    )
    updater.update_edges([edge])
    assert edge.noise_level == 70.0


def test_candidate_edges_are_reset_to_floor():
    edge = StreetEdge(id=1, from_coord=(10.0, 10.0), to_coord=(10.1, 10.0))
    edge.set_noise_level(90.0)
    updater = NoiseLevelEdgeUpdater([observed(0.0, 0.0, 80.0)], floor_level=30.0)

    assert updater.update_edges([edge]) == 0
    assert edge.noise_level == 30.0


def test_update_graph_only_touches_edges_inside_observation_area():
    inside = StreetEdge(id="inside", from_coord=(24.901, 60.10), to_coord=(24.92, 60.15))
    crossing = StreetEdge(id="crossing", from_coord=(24.90, 60.10), to_coord=(25.00, 60.15))
    outside = StreetEdge(id="outside", from_coord=(25.0, 60.0), to_coord=(25.1, 60.0))
    graph = StreetGraph([inside, crossing, outside])
    updater = NoiseLevelEdgeUpdater([observed(24.90, 60.10, 60.0), observed(24.95, 60.20, 70.0)])

    assert updater.update_graph(graph) == 1
    assert inside.noise_level == 60.0
    # Near the source but not contained in the observation envelope
    assert crossing.noise_level is None
    assert outside.noise_level is None


def test_single_observation_needs_envelope_margin():
    edge = StreetEdge(id="A", from_coord=(24.941, 60.17), to_coord=(24.95, 60.17))
    graph = StreetGraph([edge])

    assert NoiseLevelEdgeUpdater([observed(24.94, 60.17, 80.0)]).update_graph(graph) == 0
    assert edge.noise_level is None

    updater = NoiseLevelEdgeUpdater([observed(24.94, 60.17, 80.0)], envelope_margin=0.05)
    assert updater.update_graph(graph) == 1
    assert edge.noise_level == 80.0


def test_update_graph_without_valid_sources():
    edge = StreetEdge(id=1, from_coord=(0.0, 0.0), to_coord=(0.001, 0.0))
    edge.set_noise_level(55.0)
    updater = NoiseLevelEdgeUpdater([NoiseLevelObserved.model_validate({"id": "empty"})])

    assert updater.update_graph(StreetGraph([edge])) == 0
    assert edge.noise_level == 55.0


def test_other_measurement_attribute():
    edge = StreetEdge(id=1, from_coord=(24.9401, 60.17), to_coord=(24.95, 60.17))
    noise_level = observed(24.94, 60.17, 80.0, LAeq={"type": "Number", "value": 62.0})
    NoiseLevelEdgeUpdater([noise_level], measurement="LAeq").update_edges([edge])
    assert edge.noise_level == 62.0


def test_client_lists_noise_levels(mock_session):
    response = MagicMock(status_code=200)
    response.json.return_value = [noise_entity(24.94, 60.17, 80.0)]
    mock_session.get.return_value = response
    client = NgsiClient(timeout=5.0, session=mock_session)

    noise_levels = client.list_noise_level_observed("http://broker.test/v2/entities")

    assert len(noise_levels) == 1
    assert noise_levels[0].measurement() == 80.0
    mock_session.get.assert_called_once_with(
        "http://broker.test/v2/entities", params={"type": "NoiseLevelObserved"}, timeout=5.0
    )


def test_client_filters_by_modification_time(mock_session):
    response = MagicMock(status_code=200)
    response.json.return_value = []
    mock_session.get.return_value = response
    client = NgsiClient(session=mock_session)
    since = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    assert client.list_noise_level_observed("http://broker.test", since) == []

    params = mock_session.get.call_args.kwargs["params"]
    assert params["q"] == "dateModified>2024-01-01T12:00:00+00:00"


def test_client_returns_none_on_error_status(mock_session):
    mock_session.get.return_value = MagicMock(status_code=503, text="unavailable")
    client = NgsiClient(session=mock_session)
    assert client.list_noise_level_observed("http://broker.test") is None


def test_client_returns_none_on_undecodable_body(mock_session):
    response = MagicMock(status_code=200)
    response.json.side_effect = ValueError("not json")
    mock_session.get.return_value = response
    client = NgsiClient(session=mock_session)
    assert client.list_noise_level_observed("http://broker.test") is None


def test_client_raises_transport_error(mock_session):
    mock_session.get.side_effect = requests.ConnectionError("refused")
    client = NgsiClient(session=mock_session)
    with pytest.raises(TransportError):
        client.list_noise_level_observed("http://broker.test")
