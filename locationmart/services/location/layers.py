"""
Enrichment Layer Registry

Every enrichment layer is a row of data: identifier, label, service URL,
layer index, geometry kind and radius cap. The proximity resolver does the
rest, so adding a layer never means adding code.

The registry is built once at process start and is read-only afterwards.

Usage:
    from locationmart.services.location.layers import load_default_registry

    registry = load_default_registry()
    layer = registry.get("blm_national_acec")
    layer.effective_radius(500)   # -> 25.0
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from locationmart.schemas_location import LayerConfig

logger = logging.getLogger(__name__)


class UnknownLayerError(KeyError):
    """Enrichment identifier not present in the registry."""

    def __init__(self, layer_id: str):
        super().__init__(layer_id)
        self.layer_id = layer_id

    def __str__(self) -> str:
        return f"Unknown enrichment layer: {self.layer_id}"


# =============================================================================
# LAYER ROWS
# =============================================================================
# (layer_id, label, service_url, layer_index, geometry_kind, max_radius_miles[, overrides])

_BLM = "https://services1.arcgis.com/KbxwQRRfWyEYLgp4/arcgis/rest/services"
_CA_PARKS = "https://services2.arcgis.com/AhxrK3F6WM8ECvDi/arcgis/rest/services"
_CT = "https://services1.arcgis.com/FjPcSmEFuDYlIdKC/arcgis/rest/services"
_DE = "https://enterprise.firstmap.delaware.gov/arcgis/rest/services"
_FLDOT = "https://services1.arcgis.com/O1JpcwDW8sjYuddV/arcgis/rest/services"
_HOUSTON = "https://services.arcgis.com/NummVBqZSIJKUeVR/arcgis/rest/services"
_IRELAND = "https://services-eu1.arcgis.com/FH5XCsx8rYXqnjF5/ArcGIS/rest/services"
_AUSTRALIA = "https://services-ap1.arcgis.com/ypkPEy1AmwPKGNNv/arcgis/rest/services"
_BOSTON = "https://gisportal.boston.gov/arcgis/rest/services"

LAYER_ROWS: Sequence[tuple] = (
    # --- BLM national ---
    ("blm_national_acec", "BLM Areas of Critical Environmental Concern",
     f"{_BLM}/BLM_Natl_Areas_of_Critical_Environmental_Concern/FeatureServer", 1, "polygon", 25),
    ("blm_national_fire_perimeters", "BLM Fire Perimeters",
     f"{_BLM}/BLM_Natl_Fire_Perimeters_Polygon/FeatureServer", 0, "polygon", 25),
    ("blm_national_grazing_pastures", "BLM Grazing Pastures",
     f"{_BLM}/BLM_Natl_Grazing_Pasture_Polygons/FeatureServer", 0, "polygon", 25),
    ("blm_national_lwcf", "BLM Land and Water Conservation Fund",
     f"{_BLM}/BLM_Natl_Land_and_Water_Conservation_Fund_LWCF_Polygons/FeatureServer", 2, "polygon", 50),
    ("blm_national_motorized_trails", "BLM Motorized Trails",
     f"{_BLM}/BLM_Natl_GTLF_Public_Motorized_Trails/FeatureServer", 4, "polyline", 25),
    ("blm_national_nonmotorized_trails", "BLM Nonmotorized Trails",
     f"{_BLM}/BLM_Natl_GTLF_Public_Nonmotorized_Trails/FeatureServer", 6, "polyline", 50),
    ("blm_national_public_motorized_roads", "BLM Public Motorized Roads",
     f"{_BLM}/BLM_Natl_GTLF_Public_Motorized_Roads/FeatureServer", 3, "polyline", 50),
    ("blm_national_sheep_goat_grazing", "BLM Sheep and Goat Grazing Allotments",
     f"{_BLM}/BLM_Natl_Sheep_and_Goat_Billed_Grazing_Allotments/FeatureServer", 3, "polygon", 50),
    ("blm_national_wild_horse_burro_herd_areas", "BLM Wild Horse and Burro Herd Areas",
     f"{_BLM}/BLM_Natl_Wild_Horse_and_Burro_Heard_Area_Polygons/FeatureServer", 4, "polygon", 25),

    # --- Species ranges ---
    ("american_eel_current", "American Eel Current Range",
     "https://services.arcgis.com/QVENGdaPbd4LUkLV/arcgis/rest/services/AmericanEelCurrent/FeatureServer",
     0, "polygon", 50),
    ("bighorn_sheep", "Bighorn Sheep",
     "https://services.arcgis.com/QVENGdaPbd4LUkLV/arcgis/rest/services/Bighorn_Sheep/FeatureServer",
     0, "point", 50),
    ("chinook_salmon_ranges", "Chinook Salmon Ranges",
     "https://services.arcgis.com/XG15cJAlne2vxtgt/ArcGIS/rest/services/Chinook_Salmon_Ranges/FeatureServer",
     0, "polygon", 50),

    # --- California ---
    ("ca_state_parks_boundaries", "CA State Parks Boundaries",
     f"{_CA_PARKS}/ParkBoundaries/FeatureServer", 0, "polygon", 25),
    ("ca_state_parks_campgrounds", "CA State Parks Campgrounds",
     f"{_CA_PARKS}/Campgrounds/FeatureServer", 0, "point", 25),
    ("ca_state_parks_entry_points", "CA State Parks Entry Points",
     f"{_CA_PARKS}/ParkEntryPoints/FeatureServer", 2, "point", 25),
    ("ca_state_parks_parking_lots", "CA State Parks Parking Lots",
     f"{_CA_PARKS}/ParkingPoints/FeatureServer", 0, "point", 25),
    ("ca_state_parks_recreational_routes", "CA State Parks Recreational Routes",
     f"{_CA_PARKS}/RecreationalRoutes/FeatureServer", 0, "polyline", 25),
    ("ca_frap_facilities", "CA FRAP Facilities",
     "https://egis.fire.ca.gov/arcgis/rest/services/FRAP/Facilities/MapServer", 0, "point", 50),
    ("ca_marine_oil_terminals", "CA Marine Oil Terminals",
     "https://services3.arcgis.com/5aaQCuq3e4GRvkFG/arcgis/rest/services/Marine_Oil_Terminals/FeatureServer",
     0, "point", 50),
    ("ca_solar_footprints", "CA Solar Footprints",
     "https://services3.arcgis.com/bWPjFyq029ChCGur/arcgis/rest/services/Solar_Footprints_V2/FeatureServer",
     0, "polygon", 25),
    ("ca_fire_perimeters_1950", "CA Historic Fire Perimeters (1950+)",
     "https://services1.arcgis.com/jUJYIo9tSA7EHvfZ/arcgis/rest/services/California_Historic_Fire_Perimeters/FeatureServer",
     2, "polygon", 25),
    ("ca_highway_rest_areas", "CA Highway Rest Areas",
     "https://caltrans-gis.dot.ca.gov/arcgis/rest/services/CHhighway/Rest_Areas/FeatureServer",
     0, "point", 50),
    ("ca_la_zoning", "Los Angeles Zoning",
     "https://services5.arcgis.com/7nsPwEMP38bSkCjy/arcgis/rest/services/Zoning/FeatureServer",
     0, "polygon", 1, {"default_radius_miles": 0.5}),

    # --- Connecticut ---
    ("ct_boat_launches", "CT DEEP Boat Launches",
     f"{_CT}/Connecticut_DEEP_Boat_Launches/FeatureServer", 0, "point", 25),
    ("ct_urgent_care", "CT Urgent Care",
     "https://services3.arcgis.com/3FL1kr7L4LvwA2Kb/ArcGIS/rest/services/CTUrgentCare/FeatureServer",
     26, "point", 25),

    # --- Delaware FirstMap ---
    ("de_child_care_centers", "DE Child Care Centers",
     f"{_DE}/Society/DE_ChildCareCenters/FeatureServer", 0, "point", 25),
    ("de_public_schools", "DE Public Schools",
     f"{_DE}/Society/DE_Schools/FeatureServer", 0, "point", 25),
    ("de_school_districts", "DE School Districts",
     f"{_DE}/Society/DE_Schools/FeatureServer", 3, "polygon", 25),
    ("de_fishing_access", "DE Fishing Access",
     f"{_DE}/Society/DE_Fishing_Access/FeatureServer", 0, "point", 25),
    ("de_trout_streams", "DE Trout Streams",
     f"{_DE}/Society/DE_Fishing_Access/FeatureServer", 1, "polyline", 25),
    ("de_state_forest", "DE State Forest",
     f"{_DE}/Biota/DE_Forestry/FeatureServer", 0, "polygon", 25),
    ("de_parcels", "DE State Parcels",
     f"{_DE}/PlanningCadastre/DE_StateParcels/FeatureServer", 0, "polygon", 1,
     {"default_radius_miles": 0.3}),
    ("de_rail_lines", "DE Rail Lines",
     f"{_DE}/Transportation/DE_Multimodal/FeatureServer", 18, "polyline", 25),

    # --- Florida DOT ---
    ("fldot_bike_lanes", "FDOT Bike Lanes",
     f"{_FLDOT}/Bike_Lane_TDA/FeatureServer", 0, "polyline", 50),
    ("fldot_us_bike_routes", "US Bike Routes (Florida)",
     f"{_FLDOT}/USBikeRoutesFlorida/FeatureServer", 0, "polyline", 50),
    ("fldot_railroad_crossings", "FDOT Railroad Crossings",
     f"{_FLDOT}/Railroad_Crossing_TDA/FeatureServer", 0, "point", 50),
    ("fldot_rest_areas", "FDOT Rest Areas and Welcome Centers",
     f"{_FLDOT}/Rest_Welcome_FDOT_TDA/FeatureServer", 0, "point", 50),

    # --- Houston ---
    ("houston_bikeways", "Houston Bikeways",
     f"{_HOUSTON}/COH_Bikeways_Existing_LC_view/FeatureServer", 28, "polyline", 5),
    ("houston_fire_hydrants", "Houston Fire Hydrants",
     f"{_HOUSTON}/COH_Houston_Fire_Hydrant_view/FeatureServer", 9, "point", 1,
     {"default_radius_miles": 0.25}),
    ("houston_fire_stations", "Houston Fire Stations",
     f"{_HOUSTON}/HFD_FireStations_AOI_SZ/FeatureServer", 15, "point", 25),
    ("houston_metro_bus_routes", "Houston METRO Bus Routes",
     f"{_HOUSTON}/COH_METRO_Bus_Routes_view/FeatureServer", 29, "polyline", 5),
    ("houston_road_centerlines", "Houston Road Centerlines",
     f"{_HOUSTON}/COH_RoadCenterline/FeatureServer", 8, "polyline", 1,
     {"default_radius_miles": 0.25}),
    ("houston_site_addresses", "Houston Site Addresses",
     f"{_HOUSTON}/COH_SiteAddresses/FeatureServer", 3, "point", 1,
     {"default_radius_miles": 0.1}),
    ("houston_tirz", "Houston Tax Increment Reinvestment Zones",
     f"{_HOUSTON}/TIRZ/FeatureServer", 5, "polygon", 5),
    ("houston_neighborhoods", "Houston Neighborhoods",
     f"{_HOUSTON}/CoHoustonNeighborhoods/FeatureServer", 0, "polygon", 5),

    ("hurricane_evacuation_routes", "Hurricane Evacuation Routes",
     "https://services2.arcgis.com/FiaPA4ga0iQKduv3/arcgis/rest/services/Hurricane_Evacuation_Routes_1/FeatureServer",
     0, "polyline", 100),

    # --- Ireland ---
    ("ireland_centres_of_population", "Ireland Centres of Population",
     f"{_IRELAND}/Centres_of_Population/FeatureServer", 0, "point", 50),
    ("ireland_electoral_divisions", "Ireland Electoral Divisions",
     f"{_IRELAND}/Electoral_Divisions/FeatureServer", 0, "polygon", 10),
    ("ireland_high_water_marks", "Ireland High Water Marks",
     f"{_IRELAND}/High_Water_Mark/FeatureServer", 0, "polyline", 25),
    ("ireland_mountains", "Ireland Mountains",
     f"{_IRELAND}/Mountains/FeatureServer", 0, "point", 50),

    # --- Australia ---
    ("australia_major_roads", "Australia Major Roads",
     f"{_AUSTRALIA}/MajorRoads/FeatureServer", 0, "polyline", 25),
    ("australia_maritime_ports", "Australia Major Maritime Ports",
     f"{_AUSTRALIA}/Major_Maritime_Ports_vw/FeatureServer", 0, "point", 50),
    ("australia_trams", "Australia Tram Lines",
     f"{_AUSTRALIA}/Tram_Lines_vw/FeatureServer", 0, "polyline", 25),

    # --- Boston (services without buffered point search) ---
    ("boston_public_open_space", "Boston Public Open Space",
     f"{_BOSTON}/BaseServices/Open_Space_Public/FeatureServer", 0, "polygon", 25,
     {"supports_buffer": False}),
    ("boston_parcels_2025", "Boston Parcels 2025",
     f"{_BOSTON}/Parcels/Parcels25/MapServer", 0, "polygon", 2,
     {"supports_buffer": False, "default_radius_miles": 0.25}),
    ("boston_charging_stations", "Boston EV Charging Stations",
     f"{_BOSTON}/CityServices/OpenData/MapServer", 2, "point", 25),
    ("boston_mbta_stops", "Boston MBTA Stops",
     f"{_BOSTON}/CityServices/PublicTransit/MapServer", 0, "point", 2,
     {"default_radius_miles": 1.0}),
)


def _row_to_config(row: tuple) -> LayerConfig:
    layer_id, label, service_url, layer_index, geometry_kind, max_radius = row[:6]
    overrides: Dict[str, Any] = row[6] if len(row) > 6 else {}

    fields: Dict[str, Any] = {
        "layer_id": layer_id,
        "label": label,
        "service_url": service_url,
        "layer_index": layer_index,
        "geometry_kind": geometry_kind,
        "max_radius_miles": max_radius,
        # Default radius never exceeds the cap
        "default_radius_miles": min(5.0, float(max_radius)),
    }
    fields.update(overrides)
    return LayerConfig(**fields)


# =============================================================================
# REGISTRY
# =============================================================================

class LayerRegistry:
    """Read-only mapping of enrichment identifier -> LayerConfig, in registration order."""

    def __init__(self, layers: Iterable[LayerConfig]):
        by_id: Dict[str, LayerConfig] = {}
        for layer in layers:
            if layer.layer_id in by_id:
                raise ValueError(f"Duplicate enrichment layer id: {layer.layer_id}")
            by_id[layer.layer_id] = layer
        self._layers = MappingProxyType(by_id)

    @classmethod
    def from_rows(cls, rows: Iterable[tuple]) -> "LayerRegistry":
        return cls(_row_to_config(row) for row in rows)

    def get(self, layer_id: str) -> LayerConfig:
        try:
            return self._layers[layer_id]
        except KeyError:
            raise UnknownLayerError(layer_id) from None

    def find(self, layer_id: str) -> Optional[LayerConfig]:
        return self._layers.get(layer_id)

    def ids(self) -> List[str]:
        return list(self._layers)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._layers

    def __iter__(self) -> Iterator[LayerConfig]:
        return iter(self._layers.values())

    def __len__(self) -> int:
        return len(self._layers)


def load_default_registry() -> LayerRegistry:
    registry = LayerRegistry.from_rows(LAYER_ROWS)
    logger.info(f"Loaded {len(registry)} enrichment layers")
    return registry
