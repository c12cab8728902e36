"""
Streamlit Frontend for Finance DSS

A thin caller of the orchestrator API for people deciding which
financial goal to work on first.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Judgements are entered on the familiar 1-9 scale
3. Clear error messages in simple language
4. Every number shown comes from a model run (nothing is computed here)
5. The consistency check is always visible

Pages:
- Goal prioritization: goals, criteria, pairwise judgements → ranking
- Model catalog: what the registry knows about each model
"""

import asyncio
from itertools import combinations

import streamlit as st

from finance_dss.analytics.ahp import GoalPrioritizationModel
from finance_dss.audit import create_correlation_id
from finance_dss.config import get_settings, validate_all_settings
from finance_dss.mbms import (
    CacheUnavailableError,
    ExecutionError,
    MBMSError,
    RedisResultCache,
)
from finance_dss.models.ahp import (
    AHPInput,
    AHPOutput,
    Alternative,
    Criteria,
    PairwiseComparison,
)
from finance_dss.orchestrator import AppComponents, create_app_components
from finance_dss.validation import AHPInputValidator


MODEL_NAME = "goal_prioritization"

# Saaty scale, from "second element extremely more important" to
# "first element extremely more important"
SCALE = [1 / 9, 1 / 8, 1 / 7, 1 / 6, 1 / 5, 1 / 4, 1 / 3, 1 / 2, 1, 2, 3, 4, 5, 6, 7, 8, 9]

DEFAULT_GOALS = "Emergency fund\nPay off credit card\nSave for a house"
DEFAULT_CRITERIA = "Urgency\nFinancial impact\nRisk reduction"


# Page configuration
st.set_page_config(
    page_title="Finance DSS",
    page_icon="🎯",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    components = create_app_components()

    if isinstance(components.cache, RedisResultCache):
        try:
            run_async(_check_redis(components.cache))
        except CacheUnavailableError as e:
            components.problems.append(str(e))

    return components


async def _check_redis(cache: RedisResultCache) -> None:
    try:
        await cache.connect(attempts=get_settings().cache.connect_attempts)
    finally:
        await cache.close()


async def _run_model(components: AppComponents, ahp_input: AHPInput):
    """
    Execute through the orchestrator.

    Every run_async call gets a fresh event loop, so Redis connections
    are dropped afterwards instead of being reused on a closed loop.
    """
    try:
        return await components.orchestrator.execute_single(
            MODEL_NAME,
            ahp_input,
            correlation_id=create_correlation_id(),
        )
    finally:
        if isinstance(components.cache, RedisResultCache):
            await components.cache.close()


def format_judgement(value: float) -> str:
    if value >= 1:
        return f"{value:g}"
    return f"1/{round(1 / value)}"


def main():
    """Main application entry point."""
    components = get_components()

    # Sidebar navigation
    st.sidebar.title("🎯 Finance DSS")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🎯 Prioritize Goals", "📚 Model Catalog"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. List your goals and what matters to you
        2. Compare them two at a time
        3. See which goal comes first, and how sure we are

        **The 1-9 scale:**
        - 1: equally important
        - 3: a bit more important
        - 5: clearly more important
        - 9: far more important
        """
    )

    # Route to appropriate page
    if page == "🎯 Prioritize Goals":
        render_prioritization_page(components)
    elif page == "📚 Model Catalog":
        render_catalog_page(components)


def render_prioritization_page(components: AppComponents):
    """Render the goal prioritization page."""
    st.title("🎯 Prioritize Your Goals")
    st.markdown("Compare your goals two at a time. We'll work out the order.")

    col1, col2 = st.columns(2)
    with col1:
        goals_text = st.text_area("Your goals (one per line)", DEFAULT_GOALS, height=140)
    with col2:
        criteria_text = st.text_area(
            "What matters to you (one per line)", DEFAULT_CRITERIA, height=140
        )

    goal_names = [line.strip() for line in goals_text.splitlines() if line.strip()]
    criteria_names = [line.strip() for line in criteria_text.splitlines() if line.strip()]

    alternatives = [
        Alternative(id=f"goal_{i + 1}", name=name) for i, name in enumerate(goal_names)
    ]
    criteria = [
        Criteria(id=f"criterion_{i + 1}", name=name) for i, name in enumerate(criteria_names)
    ]

    if len(alternatives) < 2 or len(criteria) < 2:
        st.info("Please enter at least two goals and two things that matter to you.")
        return

    st.markdown("### 1. How important is each thing that matters?")
    criteria_comparisons = render_comparisons("criteria", criteria)

    st.markdown("### 2. How well does each goal do on each?")
    alternative_comparisons = {}
    for criterion in criteria:
        with st.expander(f"Comparing goals on: {criterion.name}"):
            alternative_comparisons[criterion.id] = render_comparisons(
                criterion.id, alternatives
            )

    ahp_input = AHPInput(
        criteria=criteria,
        alternatives=alternatives,
        criteria_comparisons=criteria_comparisons,
        alternative_comparisons=alternative_comparisons,
    )

    validator = AHPInputValidator()
    validation = validator.validate(ahp_input)
    if not validation.is_valid:
        st.warning(validator.get_user_friendly_summary(validation))
        return

    if not st.button("📊 Rank my goals", type="primary"):
        return

    with st.spinner("Working out your priorities..."):
        try:
            result = run_async(_run_model(components, ahp_input))
        except ExecutionError as e:
            st.error(f"❌ We couldn't rank your goals: {e}")
            return
        except MBMSError as e:
            st.error(f"❌ The ranking model is not available: {e}")
            return

    model = components.registry.get(MODEL_NAME)
    if not isinstance(model, GoalPrioritizationModel):
        st.error("❌ The ranking model is not available.")
        return

    render_results(model, ahp_input, result)


def render_comparisons(key_prefix: str, elements: list) -> list[PairwiseComparison]:
    """One slider per pair; the value says how much more the left one matters."""
    comparisons = []
    for a, b in combinations(elements, 2):
        value = st.select_slider(
            f"{a.name}  vs  {b.name}",
            options=SCALE,
            value=1,
            format_func=format_judgement,
            key=f"{key_prefix}:{a.id}:{b.id}",
            help="Right of 1: the first one matters more. Left of 1: the second one does.",
        )
        comparisons.append(PairwiseComparison(element_a=a.id, element_b=b.id, value=value))
    return comparisons


def render_results(model: GoalPrioritizationModel, ahp_input: AHPInput, result):
    """Show the ranking, the consistency check and the sensitivity report."""
    # A result served from Redis comes back as plain JSON
    output = result.output
    if not isinstance(output, AHPOutput):
        output = AHPOutput.model_validate(output)

    st.markdown("---")
    st.markdown("### 🏆 Your priorities")
    st.table([
        {
            "Rank": item.rank,
            "Goal": item.alternative_name,
            "Priority": f"{item.priority:.1%}",
        }
        for item in output.ranking
    ])

    if output.is_consistent:
        st.success(
            f"✅ Your judgements are consistent (CR = {output.consistency_ratio:.3f})."
        )
    else:
        st.warning(
            f"⚠️ Some judgements contradict each other "
            f"(CR = {output.consistency_ratio:.3f}, should be below 0.10). "
            "Please review the importance comparisons."
        )

    sensitivity = model.analyze_sensitivity(ahp_input, output)
    stability = sensitivity.ranking_stability

    st.markdown("### 🔍 How sure are we?")
    st.metric("Stability score", f"{stability.stability_score:.0f} / 100")
    st.info(stability.recommendation)

    criteria_names = {c.id: c.name for c in ahp_input.criteria}
    if sensitivity.critical_thresholds:
        st.markdown("**What could change the top choice:**")
        for threshold in sensitivity.critical_thresholds:
            st.markdown(
                f"- If *{criteria_names.get(threshold.criterion_id, threshold.criterion_id)}* grew from "
                f"{threshold.current_weight:.0%} to {threshold.threshold_weight:.0%}: "
                f"{threshold.affected_ranking}"
            )

    for warning in result.metadata.warnings:
        st.caption(f"Note: {warning}")


def render_catalog_page(components: AppComponents):
    """Render the model catalog page."""
    st.title("📚 Model Catalog")

    if components.problems:
        st.error("❌ Startup checks found problems:")
        for problem in components.problems:
            st.markdown(f"- {problem}")
    else:
        st.success("✅ All models and dependencies are healthy.")

    metadata = components.registry.get_all_metadata()
    st.table([
        {
            "Model": meta.name,
            "Description": meta.description,
            "Category": meta.category.value,
            "Depends on": ", ".join(meta.dependencies) or "-",
            "Enabled": "✅" if meta.is_enabled else "❌",
            "Runs": meta.total_executions,
            "Avg time (ms)": f"{meta.average_exec_time_ms:.1f}",
        }
        for meta in metadata.values()
    ])

    st.markdown("---")
    st.markdown("### Configuration")

    status = validate_all_settings()
    for section in ("cache", "orchestrator", "app"):
        if status.get(section, False):
            st.success(f"✅ {section} settings - OK")
        else:
            error = status.get(f"{section}_error", "Invalid")
            st.error(f"❌ {section} settings - {error}")


if __name__ == "__main__":
    main()
