"""
Family Tree Layout Viewer - Web Application
Visualisation: custom SVG renderer (orthogonal buses).
Features: layout settings sidebar, collapse, auto-arrange, incremental add, activity log.
"""

import os
from dataclasses import asdict, fields

import streamlit as st
from st_click_detector import click_detector

from data_manager import DataManager
from family_snapshot import GENDER_FEMALE, GENDER_MALE, GENDER_UNKNOWN, visible_person_ids
from generation_calculator import assign_generations, generation_label
from layout_config import (CYCLE_BREAKING_MODES, GENERATION_ALIGNMENT_MODES, MULTI_SPOUSE_MODES,
                           LayoutConfig, LayoutConfigError, LayoutRules)
from svg_renderer import SVGRenderer

PROJECT_FILE = os.path.join("family_tree_data", "family.tree")

# Rules that take one of several options instead of on/off
RULE_CHOICES = {
    'cycle_breaking': CYCLE_BREAKING_MODES,
    'multi_spouse_mode': MULTI_SPOUSE_MODES,
    'generation_alignment': GENERATION_ALIGNMENT_MODES,
}

# --- PAGE CONFIG ---
st.set_page_config(
    page_title="Family Tree Layout",
    page_icon="🌳",
    layout="wide",
    initial_sidebar_state="expanded"
)


# --- 1. DATA ---
@st.cache_resource
def get_data_manager(project_file: str):
    dm = DataManager(project_file)
    dm.load_project()
    return dm


def save_state(dm: DataManager):
    dm.save_project()
    st.rerun()


def _label(name: str) -> str:
    return name.replace("_", " ").capitalize()


# --- 2. SETTINGS SIDEBAR ---
def render_settings(defaults_config: LayoutConfig, defaults_rules: LayoutRules):
    """Every LayoutConfig field and LayoutRules rule, overridable. Returns (config, rules) or (None, None)."""
    config_values = {}
    with st.sidebar.expander("📐 Layout parameters", expanded=False):
        for f in fields(LayoutConfig):
            default = getattr(defaults_config, f.name)
            if isinstance(default, int) and f.type in (int, 'int'):
                config_values[f.name] = int(st.number_input(_label(f.name), value=int(default), step=1,
                                                            key=f"cfg_{f.name}"))
            else:
                config_values[f.name] = float(st.number_input(_label(f.name), value=float(default),
                                                              key=f"cfg_{f.name}"))

    rule_values = {}
    with st.sidebar.expander("⚙️ Layout rules", expanded=False):
        for name, default in asdict(defaults_rules).items():
            if name in RULE_CHOICES:
                options = list(RULE_CHOICES[name])
                rule_values[name] = st.selectbox(_label(name), options, index=options.index(default),
                                                 key=f"rule_{name}")
            else:
                rule_values[name] = st.toggle(_label(name), value=default, key=f"rule_{name}")

    try:
        return LayoutConfig.from_overrides(config_values), LayoutRules.from_overrides(rule_values)
    except LayoutConfigError as e:
        st.sidebar.error(f"Invalid setting: {e}")
        return None, None


def render_sidebar(dm: DataManager):
    st.sidebar.title("🌳 Family Tree")
    config, rules = render_settings(LayoutConfig(), LayoutRules())

    st.sidebar.markdown("---")
    people = dm.get_all_people()
    options_map = {f"{label} (ID: {pid})": pid for pid, label in people}

    collapsed_labels = st.sidebar.multiselect("➖ Collapse descendants of", sorted(options_map.keys()),
                                              key="collapsed_selector")
    collapsed = tuple(sorted(options_map[label] for label in collapsed_labels))

    if config is not None and st.sidebar.button("🧹 Auto-arrange (unpin all)"):
        dm.auto_arrange(config, rules, collapsed)
        st.session_state.layout_key = None
        save_state(dm)

    st.sidebar.markdown("---")
    with st.sidebar.form("add_person_form"):
        st.write("➕ **Add person**")
        new_name = st.text_input("Name")
        gender = st.radio("Gender", [GENDER_MALE, GENDER_FEMALE, GENDER_UNKNOWN], horizontal=True)
        birth_date = st.text_input("Birth date (YYYY-MM-DD)")
        title = st.text_input("Title")
        parent_label = st.selectbox("Child of", ["--"] + sorted(options_map.keys()))
        spouse_label = st.selectbox("Spouse of", ["--"] + sorted(options_map.keys()))
        marriage_order = st.number_input("Marriage order", min_value=1, value=1, step=1)
        if st.form_submit_button("Add") and new_name:
            new_id = dm.add_person(new_name, gender, birth_date or None, title=title or None)
            if parent_label != "--":
                dm.add_child(options_map[parent_label], new_id)
            if spouse_label != "--":
                dm.add_partner(options_map[spouse_label], new_id, marriage_order=int(marriage_order))
            dm.place_new_person(new_id, config=config)
            st.session_state.selected_person_id = new_id
            save_state(dm)

    if not people and st.sidebar.button("🛠 Demo data"):
        dm.create_test_data()
        st.session_state.layout_key = None
        save_state(dm)

    with st.sidebar.expander("📜 Activity log", expanded=False):
        logs = dm.logger.get_recent_logs(10)
        if not logs:
            st.write("No activity yet.")
        for timestamp, user, action, details in logs:
            st.markdown(f"**{action}** ({user})")
            st.caption(f"{details} | {timestamp}")

    return config, rules, collapsed


# --- 3. GRAPH ---
def render_graph(dm: DataManager, config, rules, collapsed, selected_pid):
    if not dm.graph.nodes():
        st.info("The tree is empty. Add people from the sidebar or load the demo data.")
        return None
    if config is None:
        st.warning("Fix the layout settings to redraw the tree.")
        return None

    snapshot = dm.to_snapshot()
    layout_key = (config, rules, collapsed)
    positions = dm.get_positions()
    visible = visible_person_ids(snapshot, collapsed)

    # Full relayout only when the settings change or someone has no position yet
    if st.session_state.get('layout_key') != layout_key or any(pid not in positions for pid in visible):
        result = dm.relayout(config, rules, collapsed)
        dm.save_project()
        st.session_state.layout_key = layout_key
        if not result.converged:
            st.toast("Some nodes may still overlap", icon="⚠️")
        positions = dm.get_positions()

    shown = {pid: positions[pid] for pid in visible if pid in positions}
    renderer = SVGRenderer(snapshot, shown, config, selected_pid)
    zoom = st.slider("🔍 Zoom", 0.2, 2.0, 1.0, 0.1)
    return click_detector(renderer.generate_svg(zoom), key="graph_view")


# --- 4. DETAILS ---
def _names(dm: DataManager, ids) -> str:
    return ', '.join(dm.graph.nodes[i].get('label', i) for i in ids) or '—'


def render_details(dm: DataManager, pid: str):
    data = dm.get_person_data(pid)
    assignment = assign_generations(dm.to_snapshot())
    gen_text = generation_label(assignment.get(pid) or 0)

    st.markdown(f"### {data.get('label')}  \n*{gen_text}*")
    c1, c2 = st.columns(2)
    with c1:
        st.write(f"**Gender:** {data.get('gender') or '—'}")
        st.write(f"**Birth date:** {data.get('birth_date') or '—'}")
        st.write(f"**Title:** {data.get('title') or '—'}")
    with c2:
        st.write(f"**Parents:** {_names(dm, dm.get_parents(pid))}")
        st.write(f"**Spouses:** {_names(dm, dm.get_partners(pid))}")
        st.write(f"**Children:** {_names(dm, dm.get_children(pid))}")

    pos = data.get('position') or {}
    with st.form("position_form"):
        st.write("📌 **Position**")
        x = st.number_input("X", value=float(pos.get('x', 0.0)))
        y = st.number_input("Y", value=float(pos.get('y', 0.0)))
        fixed = st.checkbox("Pinned", value=bool(pos.get('fixed', False)))
        if st.form_submit_button("Save position"):
            dm.set_position(pid, x, y, fixed)
            save_state(dm)


# --- 5. MAIN ---
def main():
    if 'selected_person_id' not in st.session_state:
        st.session_state.selected_person_id = None

    dm = get_data_manager(PROJECT_FILE)
    config, rules, collapsed = render_sidebar(dm)

    st.subheader("📊 Family Tree")
    selected_pid = st.session_state.get('selected_person_id')
    clicked = render_graph(dm, config, rules, collapsed, selected_pid)
    if clicked and clicked != selected_pid:
        st.session_state.selected_person_id = clicked
        st.rerun()

    st.markdown("---")
    if selected_pid and dm.graph.has_node(selected_pid):
        render_details(dm, selected_pid)
    else:
        st.info("👈 Click a person in the tree to see details.")


if __name__ == "__main__":
    main()
