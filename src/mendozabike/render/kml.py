from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Optional
import xml.etree.ElementTree as ET
from zoneinfo import ZoneInfo

from mendozabike.config.models import WebSettings
from mendozabike.schemas.core import BikePath, CanonicalStation, RepairPoint, Snapshot


KML_NS = "http://www.opengis.net/kml/2.2"
KML_MEDIA_TYPE = "application/vnd.google-earth.kml+xml"

BICYCLE_ICON = "http://maps.google.com/mapfiles/kml/shapes/bicycle.png"
REPAIR_ICON = "http://maps.google.com/mapfiles/kml/shapes/mechanic.png"

# KML colors are aabbggrr.
STATION_STYLES = {
    "many": "ff00ff00",
    "few": "ff00ffff",
    "empty": "ff0000ff",
}
REPAIR_COLOR = "ff0080ff"
PATH_COLOR = "ffff8000"
PATH_WIDTH = "4"


def format_local(ts: datetime, tz: ZoneInfo) -> str:
    # Mirrors the es-AR locale rendering: "14/11/2023, 19:13:20".
    return ts.astimezone(tz).strftime("%d/%m/%Y, %H:%M:%S")


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib: str) -> ET.Element:
    elem = ET.SubElement(parent, tag, attrib)
    if text is not None:
        elem.text = text
    return elem


def _icon_style(doc: ET.Element, style_id: str, color: str, icon: str) -> None:
    style = _sub(doc, "Style", id=style_id)
    icon_style = _sub(style, "IconStyle")
    _sub(icon_style, "color", color)
    _sub(icon_style, "scale", "1.0")
    _sub(_sub(icon_style, "Icon"), "href", icon)


def station_description(station: CanonicalStation, tz: ZoneInfo) -> str:
    lines = [
        '<div style="font-family: Arial, sans-serif;">',
        f"<h3>{escape(station.name)}</h3>",
        f"<p><strong>Bicicletas disponibles:</strong> {station.bikes_available}</p>",
        f"<p><strong>Espacios disponibles:</strong> {station.docks_available}</p>",
    ]
    if station.total_docks is not None:
        lines.append(f"<p><strong>Total de espacios:</strong> {station.total_docks}</p>")
    if station.occupancy_pct is not None:
        lines.append(f"<p><strong>Ocupación:</strong> {station.occupancy_pct}%</p>")
    if station.address:
        lines.append(f"<p><strong>Dirección:</strong> {escape(station.address)}</p>")
    if station.last_reported is not None:
        lines.append(f"<p><strong>Última actualización:</strong> {format_local(station.last_reported, tz)}</p>")
    lines.append("</div>")
    return "\n".join(lines)


def _station_placemark(folder: ET.Element, station: CanonicalStation, tz: ZoneInfo) -> None:
    pm = _sub(folder, "Placemark", id=f"station-{station.station_id}")
    _sub(pm, "name", f"{station.name} ({station.bikes_available} bicis)")
    _sub(pm, "description", station_description(station, tz))
    _sub(pm, "styleUrl", f"#station-{station.status}")
    _sub(_sub(pm, "Point"), "coordinates", f"{station.lon},{station.lat},0")


def _repair_placemark(folder: ET.Element, point: RepairPoint) -> None:
    pm = _sub(folder, "Placemark")
    _sub(pm, "name", point.name)
    if point.description:
        _sub(pm, "description", point.description)
    _sub(pm, "styleUrl", "#repair-point")
    _sub(_sub(pm, "Point"), "coordinates", f"{point.lon},{point.lat},0")


def _path_placemark(folder: ET.Element, path: BikePath) -> None:
    pm = _sub(folder, "Placemark")
    _sub(pm, "name", path.name)
    details = [f"Longitud: {path.length_m / 1000:.2f} km"]
    if path.department:
        details.insert(0, f"Departamento: {path.department}")
    _sub(pm, "description", " | ".join(details))
    _sub(pm, "styleUrl", "#bike-path")
    line = _sub(pm, "LineString")
    _sub(line, "tessellate", "1")
    _sub(line, "coordinates", " ".join(f"{v.lon},{v.lat},0" for v in path.coordinates))


def render_kml(snapshot: Snapshot, *, web: WebSettings) -> bytes:
    """Render a snapshot as a UTF-8 KML 2.2 document."""

    tz = ZoneInfo(web.timezone)
    root = ET.Element("kml", {"xmlns": KML_NS})
    doc = _sub(root, "Document")
    _sub(doc, "name", web.document_name)
    _sub(doc, "description", web.document_description)

    for status, color in STATION_STYLES.items():
        _icon_style(doc, f"station-{status}", color, BICYCLE_ICON)
    _icon_style(doc, "repair-point", REPAIR_COLOR, REPAIR_ICON)
    path_style = _sub(doc, "Style", id="bike-path")
    line_style = _sub(path_style, "LineStyle")
    _sub(line_style, "color", PATH_COLOR)
    _sub(line_style, "width", PATH_WIDTH)

    stations = _sub(doc, "Folder")
    _sub(stations, "name", "Estaciones de Bicicletas")
    for station in snapshot.stations:
        _station_placemark(stations, station, tz)

    repairs = _sub(doc, "Folder")
    _sub(repairs, "name", "Puntos de Reparación")
    for point in snapshot.repair_points:
        _repair_placemark(repairs, point)

    paths = _sub(doc, "Folder")
    _sub(paths, "name", "Ciclovías")
    for path in snapshot.bike_paths:
        _path_placemark(paths, path)

    return ET.tostring(root, encoding="UTF-8", xml_declaration=True)
