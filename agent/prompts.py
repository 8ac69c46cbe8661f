"""
System prompt construction for the agent loop.

The tool list is not static: the prompt is rebuilt every turn from the
tools the remote server advertised at discovery time.
"""

from .tool_server import ToolDescriptor

SYSTEM_PROMPT = """You are a helpful assistant that can analyze data using these available tools:
{tool_list}

CRITICAL INSTRUCTIONS:
1. When users ask questions about their data, IMMEDIATELY use the tools to get the actual data - don't just describe what you will do.
2. ALWAYS use the datasource "{datasource}" for data questions unless they specify a different datasource.
3. For data analysis questions, follow this sequence:
   - Use the metadata or field-listing tools to understand the data structure
   - Use the query tools to get the actual data needed to answer the question
   - Analyze the results and provide insights
4. Don't say "I will do X" - just do X immediately using the available tools.
5. Provide clear, actionable insights based on the actual data retrieved.
6. When you present tabular results, use a markdown table with a header row."""


def format_tool_list(tools: list[ToolDescriptor]) -> str:
    """One ``- name: description`` line per tool."""
    if not tools:
        return "(no tools are currently available)"
    lines = []
    for tool in tools:
        if tool.description:
            lines.append(f"- {tool.name}: {tool.description}")
        else:
            lines.append(f"- {tool.name}")
    return "\n".join(lines)


def get_system_prompt(tools: list[ToolDescriptor], datasource: str) -> str:
    """Build the turn's system prompt from the discovered tools.

    Args:
        tools: Tools discovered for this turn.
        datasource: Data source to default to when the user does not name one.
    """
    return SYSTEM_PROMPT.format(tool_list=format_tool_list(tools), datasource=datasource)
