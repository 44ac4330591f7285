"""
dashboard — view state for the earthquake map page.

Sub-modules:
    styles          — magnitude colour / radius tables, legend
    map_view        — map lifecycle state machine over a MapEngine
    folium_engine   — MapEngine rendered to HTML with folium
    event_list      — list selection, row labels, empty/error/pending states
    month_selector  — bounded month grid
    controller      — wires month → fetch → features → map + list
"""
