#!/usr/bin/env python3
"""
Demo: OpenAI API - Chat, Streaming, Tools and Structured Output

Shows how to use fmgate with the OpenAI Python SDK.

Usage:
    1. Start the server:
       fmgate serve --localhost --port 8000

    2. Run this script:
       python examples/demo_openai_client.py
"""

import json

from openai import OpenAI

# fmgate serves the OpenAI routes under /api/v1
client = OpenAI(
    base_url="http://localhost:8000/api/v1",
    api_key="not-needed"
)

print("=" * 60)
print("OpenAI API Demo - fmgate")
print("=" * 60)

# 1. Available models
print("\n1. List Models")
print("-" * 40)
for model in client.models.list():
    print(f"  {model.id}")

# 2. Plain chat with a conversation history
print("\n2. Chat Completion")
print("-" * 40)
messages = [
    {"role": "system", "content": "You are a helpful assistant."},
    {"role": "user", "content": "What is the capital of France?"},
    {"role": "assistant", "content": "Paris."},
    {"role": "user", "content": "And of Italy?"},
]
response = client.chat.completions.create(model="base", messages=messages, max_tokens=50)
choice = response.choices[0]
print(f"Answer: {choice.message.content}")
print(f"Finish reason: {choice.finish_reason}")

# 3. Streaming
print("\n3. Streaming")
print("-" * 40)
stream = client.chat.completions.create(
    model="base",
    messages=[{"role": "user", "content": "Count from one to ten in words"}],
    stream=True,
)
for chunk in stream:
    delta = chunk.choices[0].delta
    if delta.content:
        print(delta.content, end="", flush=True)
    if chunk.choices[0].finish_reason:
        print(f"\n[finish_reason={chunk.choices[0].finish_reason}]")

# 4. Structured output
print("\n4. Structured Output (JSON Schema)")
print("-" * 40)
response = client.chat.completions.create(
    model="base",
    messages=[{"role": "user", "content": "Describe a fictional city"}],
    response_format={
        "type": "json_schema",
        "json_schema": {
            "name": "city",
            "schema": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "population": {"type": "integer", "minimum": 1000},
                    "climate": {"type": "string", "enum": ["arid", "temperate", "tropical"]},
                    "districts": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["name", "population", "climate", "districts"],
            },
        },
    },
)
print(json.dumps(json.loads(response.choices[0].message.content), indent=2))

# 5. Tools
print("\n5. Tool Calling")
print("-" * 40)
response = client.chat.completions.create(
    model="base",
    messages=[{"role": "user", "content": "What's the weather in Oslo?"}],
    tools=[{
        "type": "function",
        "function": {
            "name": "get_weather",
            "description": "Current weather for a city",
            "parameters": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        },
    }],
)
choice = response.choices[0]
if choice.message.tool_calls:
    for call in choice.message.tool_calls:
        print(f"Tool call: {call.function.name}({call.function.arguments})")
else:
    print(f"Answer: {choice.message.content}")

print("\n" + "=" * 60)
print("Demo complete!")
print("=" * 60)
